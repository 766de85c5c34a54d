import logging
from datetime import timedelta, datetime

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from advoqat.database import get_db
from advoqat.errors import ConflictError, ValidationError
from advoqat.models import User, UserRole
from advoqat.auth.schemas import UserCreate, UserLogin, Token, UserProfileUpdate, UserResponse
from advoqat.auth.utils import verify_password, get_password_hash, create_access_token
from advoqat.auth.dependencies import get_current_user
from advoqat.config import ACCESS_TOKEN_EXPIRE_MINUTES

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def issue_token(user: User) -> dict:
    access_token = create_access_token(
        data={"sub": user.email, "role": user.role.value},
        expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    return {"access_token": access_token, "token_type": "bearer"}


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register_user(user_data: UserCreate, db: Session = Depends(get_db)):
    email = user_data.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise ConflictError("Email already registered")

    db_user = User(
        email=email,
        password_hash=get_password_hash(user_data.password),
        name=user_data.name,
        phone=user_data.phone,
        role=UserRole.USER,
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    logger.info(f"Registered user {db_user.id}")
    return db_user


@router.post("/login", response_model=Token)
def login_user(credentials: UserLogin, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == credentials.email.lower()).first()

    if not user or not verify_password(credentials.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user.last_login = datetime.utcnow()
    db.commit()
    return issue_token(user)


@router.get("/me", response_model=UserResponse)
def read_current_user(current_user: User = Depends(get_current_user)):
    return current_user


@router.patch("/me", response_model=UserResponse)
def update_current_user(
    update: UserProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Edit the signed-in user's own profile; email and role are not editable here."""
    changes = update.model_dump(exclude_unset=True)
    for field, value in changes.items():
        if field == "name" and not (value or "").strip():
            raise ValidationError("Name cannot be blank")
        setattr(current_user, field, value.strip() if isinstance(value, str) else value)
    db.commit()
    db.refresh(current_user)
    logger.info(f"User {current_user.id} updated profile fields: {', '.join(sorted(changes))}")
    return current_user

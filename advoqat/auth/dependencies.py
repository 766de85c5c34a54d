from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from advoqat.database import get_db
from advoqat.models import User, UserRole
from advoqat.auth.utils import verify_token

bearer_scheme = HTTPBearer()

def _credentials_exception():
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

def _user_from_token(token: str, db: Session) -> User:
    credentials_exception = _credentials_exception()
    token_data = verify_token(token, credentials_exception)
    user = db.query(User).filter(User.email == token_data.email).first()
    if user is None:
        raise credentials_exception
    return user

def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db)
):
    return _user_from_token(credentials.credentials, db)

def require_role(allowed_roles: list[UserRole]):
    def role_checker(current_user: User = Depends(get_current_user)):
        if current_user.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions"
            )
        return current_user
    return role_checker


# Convenience wrappers
def require_admin():
    return require_role([UserRole.ADMIN, UserRole.SUPER_ADMIN])


def require_professional():
    return require_role([UserRole.FREELANCER, UserRole.BARRISTER, UserRole.ADMIN, UserRole.SUPER_ADMIN])

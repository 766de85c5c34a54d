import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from advoqat.config import CORS_ORIGINS, LOG_LEVEL
from advoqat.database import engine, Base
from advoqat.errors import register_error_handlers
from advoqat.auth.routes import router as auth_router
from advoqat.cases.routes import router as cases_router
from advoqat.freelancers.routes import router as freelancers_router
from advoqat.barristers.routes import router as barristers_router
from advoqat.consultations.routes import router as consultations_router
from advoqat.notifications.routes import router as notifications_router
from advoqat.payments.routes import router as payments_router
from advoqat.documents.routes import router as documents_router
from advoqat.admin.routes import router as admin_router
from advoqat.assistant.routes import router as assistant_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create database tables
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Advoqat API",
    description="Legal services marketplace: cases, consultations and onboarding for freelancers and barristers",
    version="1.0.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Add middleware for COOP/COEP headers ---
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["Cross-Origin-Opener-Policy"] = "same-origin-allow-popups"
        response.headers["Cross-Origin-Embedder-Policy"] = "unsafe-none"
        response.headers["X-Content-Type-Options"] = "nosniff"
        return response

app.add_middleware(SecurityHeadersMiddleware)

register_error_handlers(app)

# Include routers
app.include_router(auth_router)
app.include_router(cases_router)
app.include_router(freelancers_router)
app.include_router(barristers_router)
app.include_router(consultations_router)
app.include_router(notifications_router)
app.include_router(payments_router)
app.include_router(documents_router)
app.include_router(assistant_router)
app.include_router(admin_router)

@app.get("/")
def root():
    return {
        "message": "Advoqat API",
        "version": "1.0.0",
        "status": "running"
    }

@app.get("/health")
def health_check():
    return {"status": "healthy"}

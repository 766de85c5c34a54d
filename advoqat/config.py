from decouple import config, Csv

DATABASE_URL = config("DATABASE_URL", default="sqlite:///./advoqat.db")
DB_POOL_RECYCLE = config("DB_POOL_RECYCLE", default=300, cast=int)

LOG_LEVEL = config("LOG_LEVEL", default="INFO")

# Auth
SECRET_KEY = config("SECRET_KEY", default="change-me-in-production")
ALGORITHM = config("ALGORITHM", default="HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = config("ACCESS_TOKEN_EXPIRE_MINUTES", default=60 * 24, cast=int)

FRONTEND_URL = config("FRONTEND_URL", default="http://localhost:5173")
CORS_ORIGINS = config("CORS_ORIGINS", default="http://localhost:5173", cast=Csv())

# Stripe
STRIPE_SECRET_KEY = config("STRIPE_SECRET_KEY", default="")
STRIPE_WEBHOOK_SECRET = config("STRIPE_WEBHOOK_SECRET", default="")
STRIPE_CURRENCY = config("STRIPE_CURRENCY", default="usd")
STRIPE_TIMEOUT_SECONDS = config("STRIPE_TIMEOUT_SECONDS", default=20, cast=int)

# S3-compatible object storage for case and onboarding documents
S3_ENDPOINT_URL = config("S3_ENDPOINT_URL", default=None)
S3_ACCESS_KEY_ID = config("S3_ACCESS_KEY_ID", default=None)
S3_SECRET_ACCESS_KEY = config("S3_SECRET_ACCESS_KEY", default=None)
S3_BUCKET_NAME = config("S3_BUCKET_NAME", default="advoqat-documents")
S3_PUBLIC_BASE_URL = config("S3_PUBLIC_BASE_URL", default="")
MAX_UPLOAD_SIZE = config("MAX_UPLOAD_SIZE", default=10 * 1024 * 1024, cast=int)

# Email
RESEND_API_KEY = config("RESEND_API_KEY", default="")
EMAIL_FROM_ADDRESS = config("EMAIL_FROM_ADDRESS", default="Advoqat <noreply@advoqat.com>")
EMAIL_MAX_ATTEMPTS = config("EMAIL_MAX_ATTEMPTS", default=5, cast=int)

# AI document generation and the legal assistant
OPENAI_API_KEY = config("OPENAI_API_KEY", default="")
OPENAI_MODEL = config("OPENAI_MODEL", default="gpt-4o-mini")
OPENAI_TIMEOUT_SECONDS = config("OPENAI_TIMEOUT_SECONDS", default=60, cast=float)
ASSISTANT_HISTORY_LIMIT = config("ASSISTANT_HISTORY_LIMIT", default=20, cast=int)

# Consultations
MEETING_BASE_URL = config("MEETING_BASE_URL", default="https://meet.advoqat.com")
DEFAULT_CONSULTATION_MINUTES = config("DEFAULT_CONSULTATION_MINUTES", default=30, cast=int)

# Pricing, all amounts in minor currency units
CASE_COMPLETION_FEE = config("CASE_COMPLETION_FEE", default=15000, cast=int)
DOCUMENT_FEE = config("DOCUMENT_FEE", default=1000, cast=int)
PLATFORM_FEE_PERCENT = config("PLATFORM_FEE_PERCENT", default=0, cast=int)

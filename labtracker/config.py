from dotenv import load_dotenv
import os

# Carga variables del .env
load_dotenv()

# ----------------------
# Variables globales
# ----------------------
S3_BUCKET = os.getenv("S3_BUCKET", "lab-reports-bucket")

DB_HOST = os.getenv("DB_HOST")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME")
DB_USER = os.getenv("DB_USER")
DB_PASSWORD = os.getenv("DB_PASSWORD")

if os.getenv("DATABASE_URL"):
    DATABASE_URL = os.getenv("DATABASE_URL")
elif DB_HOST:
    DATABASE_URL = f"postgresql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
else:
    DATABASE_URL = "sqlite:///labtracker.db"

COGNITO_POOL_ID = os.getenv("COGNITO_POOL_ID") or os.getenv("COGNITO_USER_POOL_ID")
COGNITO_APP_CLIENT_ID = os.getenv("COGNITO_APP_CLIENT_ID") or os.getenv("COGNITO_CLIENT_ID")
AWS_REGION = os.getenv("COGNITO_REGION") or os.getenv("AWS_REGION", "us-east-2")

# Shared-secret HS256 tokens (local development and tests). When unset,
# tokens are verified against the Cognito JWKS.
JWT_SECRET = os.getenv("JWT_SECRET")

SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Cached quote collections (seconds / number of collections)
QUERY_CACHE_TTL = float(os.getenv("QUERY_CACHE_TTL", "30"))
QUERY_CACHE_MAX_SIZE = int(os.getenv("QUERY_CACHE_MAX_SIZE", "500"))

# ----------------------
# Precios de complementos por item
# ----------------------
ADDITIONAL_SAMPLE_PRICE = 60
ADDITIONAL_HEADER_PRICE = 30
PREMIUM_COMPOUNDS = ["Tirzepatide", "Semaglutide", "Retatrutide"]

# Items per month for a new subscription of each tier
TIER_ITEM_LIMITS = {
    "free": 5,
    "pro": 50,
    "enterprise": 500,
}

# ----------------------
# Clase Config (para Flask)
# ----------------------
class Config:
    SECRET_KEY = SECRET_KEY
    S3_BUCKET = S3_BUCKET
    DATABASE_URL = DATABASE_URL
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    COGNITO_POOL_ID = COGNITO_POOL_ID
    COGNITO_APP_CLIENT_ID = COGNITO_APP_CLIENT_ID
    AWS_REGION = AWS_REGION
    JWT_SECRET = JWT_SECRET
    CORS_ORIGINS = CORS_ORIGINS
    LOG_LEVEL = LOG_LEVEL
    ERROR_REPORTER = None

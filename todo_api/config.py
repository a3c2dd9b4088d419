import os
from dotenv import load_dotenv

load_dotenv()


# Configuration for JWT
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    raise ValueError("SECRET_KEY environment variable not set.")

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60))
TOKEN_ISSUER = os.getenv("TOKEN_ISSUER", "TodoApi")
TOKEN_AUDIENCE = os.getenv("TOKEN_AUDIENCE", "TodoFrontend")

# Database
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_TIMEOUT_SECONDS = float(os.getenv("DATABASE_TIMEOUT_SECONDS", 30))
DATABASE_ECHO = os.getenv("DATABASE_ECHO", "false").strip().lower() in {"1", "true", "yes", "on"}

# Input limits
PASSWORD_MIN_LENGTH = int(os.getenv("PASSWORD_MIN_LENGTH", 8))
PASSWORD_MAX_LENGTH = 100
EMAIL_MAX_LENGTH = 255
TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 2000
SEARCH_MAX_LENGTH = 100

# HTTP
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,https://localhost:3000").split(",")
    if origin.strip()
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# staff_directory/core/config.py
from pydantic_settings import BaseSettings; from dotenv import load_dotenv
load_dotenv()
class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./staff_directory.db"
    JWT_SECRET_KEY: str = "change-me"; JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    LOG_LEVEL: str = "INFO"

    # Account security
    MAX_FAILED_LOGIN_ATTEMPTS: int = 3
    LOCKOUT_RETRY_LIMIT: int = 5
    OTP_EXPIRE_MINUTES: int = 10
    PASSWORD_RESET_EXPIRE_MINUTES: int = 15

    ACTIVITY_MAX_RANGE_DAYS: int = 90

    # Used only by `python -m staff_directory.db.seed`
    SEED_ADMIN_ID_CARD: str = "KE001"
    SEED_ADMIN_EMAIL: str = "admin@example.com"
    SEED_ADMIN_PASSWORD: str = "ChangeMe123!"
settings = Settings()

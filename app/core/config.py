from pydantic_settings import BaseSettings
from dotenv import load_dotenv
from typing import Optional
import os

load_dotenv()

class Settings(BaseSettings):
    # App
    APP_NAME: str = os.getenv("APP_NAME", "Apartment Booking API")
    DEBUG: bool = os.getenv("DEBUG", "True") == "True"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./apartments.db")

    # Identity provider tokens (issued externally, verified here)
    AUTH_SECRET_KEY: str = os.getenv("AUTH_SECRET_KEY", "")
    AUTH_ALGORITHM: str = os.getenv("AUTH_ALGORITHM", "HS256")
    AUTH_AUDIENCE: Optional[str] = os.getenv("AUTH_AUDIENCE") or None

    # Paystack
    PAYSTACK_SECRET_KEY: str = os.getenv("PAYSTACK_SECRET_KEY", "")
    PAYSTACK_BASE_URL: str = os.getenv("PAYSTACK_BASE_URL", "https://api.paystack.co")
    PAYSTACK_CALLBACK_URL: Optional[str] = os.getenv("PAYSTACK_CALLBACK_URL") or None
    PAYSTACK_TIMEOUT_SECONDS: float = float(os.getenv("PAYSTACK_TIMEOUT_SECONDS", "30"))
    PAYMENT_CURRENCY: str = os.getenv("PAYMENT_CURRENCY", "GHS")

    # Platform economics
    PLATFORM_FEE_PERCENTAGE: float = float(os.getenv("PLATFORM_FEE_PERCENTAGE", "5"))
    COMMISSION_RATE: float = float(os.getenv("COMMISSION_RATE", "0.10"))
    # "subaccount" = owner bears gateway charges, "account" = platform does
    SPLIT_CHARGE_BEARER: str = os.getenv("SPLIT_CHARGE_BEARER", "subaccount")

    # Bookings
    TICKET_CODE_LENGTH: int = int(os.getenv("TICKET_CODE_LENGTH", "8"))
    MAX_GUESTS: int = int(os.getenv("MAX_GUESTS", "20"))
    SPECIAL_REQUESTS_MAX_LENGTH: int = int(os.getenv("SPECIAL_REQUESTS_MAX_LENGTH", "500"))
    # Hour of the check-out day after which a checked-in stay is overdue
    CHECKOUT_HOUR: int = int(os.getenv("CHECKOUT_HOUR", "12"))
    # Unpaid reservations are released after this many minutes; unset disables the release sweep
    RESERVATION_HOLD_MINUTES: Optional[int] = (
        int(os.environ["RESERVATION_HOLD_MINUTES"]) if os.getenv("RESERVATION_HOLD_MINUTES") else None
    )

    # Identity verification
    VERIFICATION_VALIDITY_DAYS: int = int(os.getenv("VERIFICATION_VALIDITY_DAYS", "365"))
    MIN_FINGERPRINT_QUALITY: int = int(os.getenv("MIN_FINGERPRINT_QUALITY", "60"))
    MINIMUM_AGE: int = int(os.getenv("MINIMUM_AGE", "18"))

    # Media
    MEDIA_ROOT: str = os.getenv("MEDIA_ROOT", "media")
    BASE_URL: str = os.getenv("BASE_URL", "http://localhost:8000")

settings = Settings()

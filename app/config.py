import os
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


class Settings:
    @staticmethod
    def _get_int(name: str, default: int) -> int:
        return int(os.getenv(name, str(default)))

    @staticmethod
    def _get_bool(name: str, default: bool) -> bool:
        raw = os.getenv(name)
        if raw is None:
            return default
        return raw.strip().lower() in {"1", "true", "yes", "on"}

    @property
    def ENVIRONMENT(self) -> str:
        return os.getenv("ENVIRONMENT", "development").strip().lower()

    @property
    def IS_PRODUCTION(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def BASE_URL(self) -> str:
        return os.getenv("BASE_URL", "http://localhost:8000")

    @property
    def FRONTEND_URL(self) -> str:
        return os.getenv("FRONTEND_URL", "http://localhost:3000")

    @property
    def DATABASE_URL(self) -> str:
        database_url = os.getenv("DATABASE_URL", "").strip()
        if not database_url:
            raise ValueError("DATABASE_URL is required")
        return database_url

    @property
    def DB_CONNECT_RETRIES(self) -> int:
        return self._get_int("DB_CONNECT_RETRIES", 5)

    @property
    def DB_CONNECT_RETRY_DELAY_SECONDS(self) -> int:
        return self._get_int("DB_CONNECT_RETRY_DELAY_SECONDS", 2)

    @property
    def JWT_SECRET(self) -> str:
        return os.getenv("JWT_SECRET", "change-me-in-production")

    @property
    def JWT_ALGORITHM(self) -> str:
        return os.getenv("JWT_ALGORITHM", "HS256")

    @property
    def JWT_EXPIRE_MINUTES(self) -> int:
        return self._get_int("JWT_EXPIRE_MINUTES", 120)

    @property
    def JWT_REFRESH_EXPIRE_DAYS(self) -> int:
        return self._get_int("JWT_REFRESH_EXPIRE_DAYS", 14)

    @property
    def ADMIN_EMAIL(self) -> str:
        return os.getenv("ADMIN_EMAIL", "").strip()

    @property
    def ADMIN_PASSWORD(self) -> str:
        return os.getenv("ADMIN_PASSWORD", "")

    @property
    def ADMIN_NOTIFICATION_EMAIL(self) -> str:
        return os.getenv("ADMIN_NOTIFICATION_EMAIL", "").strip()

    # Solana / ELURC

    @property
    def SOLANA_RPC_URL(self) -> str:
        return os.getenv("SOLANA_RPC_URL", "https://api.devnet.solana.com")

    @property
    def SOLANA_NETWORK(self) -> str:
        return os.getenv("SOLANA_NETWORK", "devnet")

    @property
    def SOLANA_RPC_TIMEOUT_SECONDS(self) -> int:
        return self._get_int("SOLANA_RPC_TIMEOUT_SECONDS", 10)

    @property
    def ELURC_TOKEN_ADDRESS(self) -> str:
        return os.getenv("ELURC_TOKEN_ADDRESS", "").strip()

    @property
    def SHOP_WALLET_ADDRESS(self) -> str:
        return os.getenv("SHOP_WALLET_ADDRESS", "").strip()

    @property
    def PAYMENT_WEBHOOK_SECRET(self) -> str:
        return os.getenv("PAYMENT_WEBHOOK_SECRET", "")

    @property
    def PAYMENT_TIMEOUT_MINUTES(self) -> int:
        return self._get_int("PAYMENT_TIMEOUT_MINUTES", 10)

    @property
    def PAYMENT_TOLERANCE_LAMPORTS(self) -> int:
        return self._get_int("PAYMENT_TOLERANCE_LAMPORTS", 1000)

    @property
    def MIN_REFUND_LAMPORTS(self) -> int:
        return self._get_int("MIN_REFUND_LAMPORTS", 1000)

    # Email

    @property
    def SMTP_HOST(self) -> str:
        return os.getenv("SMTP_HOST", "")

    @property
    def SMTP_PORT(self) -> int:
        return self._get_int("SMTP_PORT", 587)

    @property
    def SMTP_USER(self) -> str:
        return os.getenv("SMTP_USER", "")

    @property
    def SMTP_PASSWORD(self) -> str:
        return os.getenv("SMTP_PASSWORD", "")

    @property
    def SMTP_USE_TLS(self) -> bool:
        return self._get_bool("SMTP_USE_TLS", True)

    @property
    def SMTP_FROM_EMAIL(self) -> str:
        return os.getenv("SMTP_FROM_EMAIL", "")

    @property
    def SMTP_FROM_NAME(self) -> str:
        return os.getenv("SMTP_FROM_NAME", "ELURC Market")

    @property
    def CORS_ORIGINS(self) -> str:
        return os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:3001")


settings = Settings()

# Validate critical settings
if settings.JWT_SECRET == "change-me-in-production":
    import warnings
    warnings.warn("JWT_SECRET is using default value. Change it in production!", UserWarning)

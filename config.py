import os
from typing import List, Optional

from dotenv import load_dotenv

# Load environment variables from .env file (if it exists)
load_dotenv()


class Settings:
    """Runtime configuration read from the environment."""

    def __init__(self):
        self.store_backend: str = os.getenv("STORE_BACKEND", "memory").lower()
        self.database_url: Optional[str] = os.getenv("DATABASE_URL")
        self.database_name: str = os.getenv("DATABASE_NAME", "campus_market")
        self.allowed_email_domain: str = os.getenv("ALLOWED_EMAIL_DOMAIN", "mitsgwl.ac.in").lstrip("@").lower()
        self.admin_name: str = os.getenv("ADMIN_NAME", "Administrator")
        self.admin_email: Optional[str] = os.getenv("ADMIN_EMAIL")
        self.admin_password: Optional[str] = os.getenv("ADMIN_PASSWORD")
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
        self.port: int = int(os.getenv("PORT", 8000))

        cors_origins_env = os.getenv("CORS_ORIGINS", "").strip()
        self.cors_origins: List[str] = (
            [origin.strip() for origin in cors_origins_env.split(",") if origin.strip()]
            if cors_origins_env else ["*"]
        )


settings = Settings()

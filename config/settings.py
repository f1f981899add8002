# config/settings.py

from pathlib import Path
from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import Field, validator
import os
import warnings
from functools import lru_cache

class Settings(BaseSettings):
    # Application
    APP_NAME: str = "BrandGuard"
    DEBUG: bool = False
    ENVIRONMENT: str = Field(default="development", pattern="^(development|staging|production)$")

    # File uploads
    UPLOAD_DIR: str = "uploads"
    UPLOAD_URL_PREFIX: str = "/uploads"
    MAX_FILE_SIZE: int = Field(default=10 * 1024 * 1024, ge=1024)

    # CORS
    CORS_ORIGINS: str = ""

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        if not self.CORS_ORIGINS:
            return ["*"] if self.DEBUG else []
        return [s.strip() for s in self.CORS_ORIGINS.split(",") if s.strip()]

    # Reference library storage
    DATA_DIR: str = "data"
    REFERENCE_STORE_BACKEND: str = Field(default="json", pattern="^(json|sql|memory)$")
    REFERENCE_STORE_FILE: Optional[str] = None
    DATABASE_URL: str = "sqlite:///./data/reference_images.db"

    # Fingerprinting
    FINGERPRINT_SIZE: int = Field(default=8, ge=2, le=64)
    DEFAULT_FINGERPRINT_ALGORITHM: str = "ahash"
    VERIFY_FINGERPRINTS: bool = False  # recompute client fingerprints server-side

    # Security
    SECRET_KEY: str = Field(default="change-me-in-production", min_length=8)
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60, ge=15, le=1440)
    ADMIN_ROLES: str = "admin"

    @property
    def admin_roles_list(self) -> List[str]:
        return [r.strip() for r in self.ADMIN_ROLES.split(",") if r.strip()]

    # Monitoring
    LOG_LEVEL: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")

    # Server
    PORT: Optional[int] = Field(default=8000, ge=1, le=65535)

    @validator('SECRET_KEY')
    def validate_secret_key(cls, v):
        """Signing key for bearer tokens"""
        if len(v) < 8:
            raise ValueError('SECRET_KEY must be at least 8 characters long')
        if len(v) < 32:
            warnings.warn(f"SECRET_KEY has {len(v)} characters; use 32 or more outside development.", UserWarning)
        return v

    @validator('DATABASE_URL')
    def validate_database_url(cls, v):
        """Only SQLite and PostgreSQL are supported by the SQL reference store"""
        if not v.startswith(('sqlite://', 'postgresql://', 'postgresql+psycopg2://')):
            raise ValueError(f'Unsupported DATABASE_URL scheme: {v.split(":", 1)[0]}')
        return v

    @validator('DEFAULT_FINGERPRINT_ALGORITHM')
    def validate_algorithm(cls, v):
        algorithm = v.strip().lower()
        if algorithm not in ('ahash', 'phash', 'dhash', 'whash'):
            raise ValueError(f'Unsupported fingerprint algorithm: {v}')
        return algorithm

    @validator('CORS_ORIGINS')
    def validate_cors_origins(cls, v):
        # ENVIRONMENT is not validated yet at this point
        if os.getenv('ENVIRONMENT') == 'production' and (not v or '*' in v):
            raise ValueError('CORS_ORIGINS must list explicit origins in production')
        return v

    @property
    def reference_images_dir(self) -> Path:
        """Directory holding the binary assets of the reference library"""
        return Path(self.UPLOAD_DIR) / "reference-images"

    @property
    def reference_store_file(self) -> Path:
        """JSON document backing the file-based reference store"""
        if self.REFERENCE_STORE_FILE:
            return Path(self.REFERENCE_STORE_FILE)
        return Path(self.DATA_DIR) / "reference-images.json"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()

# Global settings instance
settings = get_settings()

from pathlib import Path
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from config.settings import settings

DATABASE_URL = settings.DATABASE_URL

def build_engine(database_url: str = DATABASE_URL):
    """Create an engine, with sqlite-specific connection arguments when needed"""
    if database_url.startswith("sqlite"):
        if ":///./" in database_url:
            Path(database_url.split(":///", 1)[1]).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(
            database_url,
            echo=settings.DEBUG,
            connect_args={"check_same_thread": False},
        )
    return create_engine(
        database_url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=settings.DEBUG,
        connect_args={"options": "-c timezone=utc"} if "postgresql" in database_url else {},
    )

engine = build_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import config

# --- DATABASE CONFIGURATION ---
DATABASE_URL = config.DATABASE_URL


def make_engine(url: str = DATABASE_URL, echo: bool = config.SQL_ECHO):
    connect_args = {}
    if url.startswith("sqlite"):
        # FastAPI runs sync endpoints in a thread pool
        connect_args["check_same_thread"] = False
    return create_engine(url, echo=echo, connect_args=connect_args)


# Create a synchronous SQLAlchemy engine
engine = make_engine()

# Create a configured "Session" class for creating DB sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create a base class for our declarative models
Base = declarative_base()

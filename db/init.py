# db/init.py
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from utils.config import get_settings

# ---- Database engine & Session ----
DATABASE_URL = get_settings().database_url
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set in environment (.env)")

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# ---- Base for ORM models ----
Base = declarative_base()


# ---- DB session dependency ----
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def register_models():
    """Import model modules so their tables are registered on Base.metadata."""
    from models import (  # noqa: F401
        professional,
        profile,
        service_request,
        oauth_token,
        transaction,
    )


# ---- Initialization ----
def init_db(bind=None):
    """
    Creates any missing tables. The production schema is owned by the
    external store, so this only runs when AUTO_CREATE_TABLES is set
    (local development) or from tests with their own engine.
    """
    register_models()
    Base.metadata.create_all(bind=bind or engine)

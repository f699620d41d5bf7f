from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
import os

DB_PATH = os.environ.get("CHAT_STORE_PATH", os.path.abspath(os.path.join(os.path.dirname(__file__), "../data/chat_store.db")))
DATABASE_URL = f"sqlite:///{DB_PATH}"

engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False})
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def init_db(bind=None):
    """Creates the store tables (and the SQLite file's directory) if missing."""
    bind = bind or engine
    if bind is engine:
        os.makedirs(os.path.dirname(DB_PATH), exist_ok=True)
    # Import here so the mapped classes are registered on Base.metadata
    from models import db_models  # noqa: F401
    Base.metadata.create_all(bind=bind)

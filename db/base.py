from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
import os
from dotenv import load_dotenv
import pymysql

pymysql.install_as_MySQLdb()
load_dotenv()

DB_USER = os.getenv("DB_USER")
DB_PASS = os.getenv("DB_PASS")
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_NAME = os.getenv("DB_NAME", "bingo")

# Create base class for declarative models
Base = declarative_base()


def get_database_url() -> str:
    """
    Returns the configured database URL.
    BINGO_DATABASE_URL takes precedence over the DB_* MySQL settings.
    """
    override = os.getenv("BINGO_DATABASE_URL")
    if override:
        return override
    return f'mysql+pymysql://{DB_USER}:{DB_PASS}@{DB_HOST}:3306/{DB_NAME}'


def build_engine(url: str = None, **kwargs):
    """Create an engine, applying the pool sizing only to MySQL."""
    url = url or get_database_url()
    if url.startswith("mysql"):
        kwargs.setdefault("pool_size", 20)
        kwargs.setdefault("max_overflow", 10)
        kwargs.setdefault("pool_pre_ping", True)
    return create_engine(url, **kwargs)


# Create engine
engine = build_engine()

# Create session factory
Session = sessionmaker(bind=engine, expire_on_commit=False)


def bind_engine(new_engine) -> None:
    """Point the shared session factory at another engine (used by tests and scripts)."""
    global engine
    engine = new_engine
    Session.configure(bind=new_engine)


def init_models() -> None:
    """Create every bingo table that does not exist yet."""
    # Importing the package registers all models on Base.metadata
    import events.models  # noqa: F401
    Base.metadata.create_all(engine)

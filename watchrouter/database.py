from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from sqlalchemy.exc import OperationalError, ProgrammingError
import os
import time
import logging


logger = logging.getLogger(__name__)


DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("❌ DATABASE_URL environment variable not set!")

# In-memory SQLite for tests
if "sqlite" in DATABASE_URL:
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(DATABASE_URL, pool_pre_ping=True, pool_recycle=3600)


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


Base = declarative_base()


def _import_models():
    """All models must be registered on Base before create_all()"""
    import watchrouter.models  # noqa: F401


def ensure_database_exists():
    """Create the PostgreSQL database if the server says it is missing"""
    if "sqlite" in DATABASE_URL:
        return

    try:
        with engine.connect():
            logger.info("✓ Database connection successful")
            return
    except (OperationalError, ProgrammingError) as e:
        if "does not exist" not in str(e) and "Unknown database" not in str(e):
            raise

        logger.info("Database does not exist, creating it...")
        try:
            from sqlalchemy.engine.url import make_url
            url = make_url(DATABASE_URL)
            db_name = url.database
            db_user = url.username

            admin_url = url.set(database='postgres')
            admin_engine = create_engine(admin_url, isolation_level='AUTOCOMMIT')

            with admin_engine.connect() as conn:
                conn.execute(text(f"CREATE DATABASE {db_name} OWNER {db_user}"))
                logger.info(f"✓ Database {db_name} created successfully")

            admin_engine.dispose()
        except Exception as create_error:
            logger.error(f"✗ Failed to create database: {create_error}")
            raise


def init_db(attempts: int = 60, delay: float = 1.0):
    """Creates database and all tables, waiting for the server to come up"""
    for attempt in range(attempts):
        try:
            ensure_database_exists()
            _import_models()
            Base.metadata.create_all(bind=engine)
            logger.info("✓ All database tables initialized")
            return
        except (OperationalError, ProgrammingError) as e:
            if attempt < attempts - 1:
                logger.info(f"Database not ready (attempt {attempt + 1}/{attempts}), waiting...")
                time.sleep(delay)
            else:
                logger.error(f"Database initialization failed after {attempts} attempts: {e}")
                raise


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

"""Database connection management utilities."""
import logging
from contextlib import contextmanager
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, scoped_session
from config.settings import settings
import os

logger = logging.getLogger(__name__)

# Global engine and session factory
_engine = None
_session_factory = None


def get_engine():
    """Get or create the global database engine."""
    global _engine
    if _engine is None:
        is_production = os.getenv('FLASK_ENV') == 'production'
        db_url = settings.agent.database_url

        if is_production and 'postgresql' in db_url:
            # A handful of gunicorn workers share a small managed Postgres
            _engine = create_engine(
                db_url,
                pool_size=3,
                max_overflow=2,
                pool_pre_ping=True,
                pool_recycle=300,
                pool_timeout=10,
                connect_args={
                    "connect_timeout": 10,
                    "options": "-c statement_timeout=60000"  # hours sync inserts a full year
                },
                echo=False
            )
            logger.info(f"Database engine initialized for production (PostgreSQL): pool_size={_engine.pool.size()}")
        else:
            engine_kwargs = {"echo": False}

            if 'sqlite' in db_url:
                # Sync jobs run in background threads next to request handlers
                engine_kwargs["connect_args"] = {"check_same_thread": False}
                if db_url.startswith('sqlite:///') and ':memory:' not in db_url:
                    db_dir = os.path.dirname(db_url[len('sqlite:///'):])
                    if db_dir:
                        os.makedirs(db_dir, exist_ok=True)
            else:
                engine_kwargs.update({
                    "pool_size": 5,
                    "max_overflow": 10,
                    "pool_pre_ping": True,
                    "pool_recycle": 3600
                })

            _engine = create_engine(db_url, **engine_kwargs)
            logger.info("Database engine initialized for development")
    return _engine


def get_session_factory():
    """Get or create the global session factory."""
    global _session_factory
    if _session_factory is None:
        engine = get_engine()
        _session_factory = scoped_session(sessionmaker(bind=engine))
    return _session_factory


def get_session():
    """Get a new database session."""
    factory = get_session_factory()
    return factory()


def close_session(session):
    """Close a database session properly."""
    try:
        session.close()
    except Exception as e:
        logger.warning(f"Error closing session: {e}")


@contextmanager
def session_scope():
    """Provide a transactional scope around a series of operations.

    Usage:
        with session_scope() as session:
            # use session here
            # automatically commits on success, rolls back on error
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        close_session(session)


def init_database():
    """Create all IRIS tables that do not exist yet."""
    try:
        engine = get_engine()

        # Import models so they register on Base.metadata
        from src.models import Base  # noqa: F401

        Base.metadata.create_all(engine)
        logger.info("Database tables created/verified")
        return True
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        return False


def check_connection() -> bool:
    """Run a trivial query to verify the database is reachable."""
    with get_engine().connect() as conn:
        conn.execute(text("SELECT 1"))
    return True


def cleanup_connections():
    """Clean up database connections (useful for worker shutdown)."""
    global _engine, _session_factory

    if _session_factory is not None:
        try:
            _session_factory.remove()
            logger.info("Session factory cleaned up successfully")
        except Exception as e:
            logger.warning(f"Error cleaning up session factory: {e}")
        finally:
            _session_factory = None

    if _engine is not None:
        try:
            _engine.dispose()
            logger.info("Database engine disposed successfully")
        except Exception as e:
            logger.warning(f"Error disposing database engine: {e}")
        finally:
            _engine = None

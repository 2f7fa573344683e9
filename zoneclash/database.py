from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from functools import wraps
import logging

from zoneclash.config import get_settings
from zoneclash.core.exceptions import ZoneClashException

logger = logging.getLogger(__name__)


def _use_immediate_transactions(engine) -> None:
    """
    SQLite only: open every transaction with BEGIN IMMEDIATE.

    pysqlite's implicit deferred BEGIN lets two writers deadlock while
    upgrading their locks; taking the write lock up front makes them queue
    on the busy timeout instead.
    """
    @event.listens_for(engine, "connect")
    def _disable_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def make_engine(database_url: str):
    is_sqlite = database_url.startswith("sqlite")
    # SQLite needs check_same_thread=False: FastAPI runs sync endpoints on a threadpool
    engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False} if is_sqlite else {},
        pool_pre_ping=True
    )
    if is_sqlite:
        _use_immediate_transactions(engine)
    return engine


settings = get_settings()

engine = make_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """
    FastAPI dependency: one Session per request.

    The session is always closed once the request is done.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _find_session(args, kwargs):
    if 'db' in kwargs and isinstance(kwargs['db'], Session):
        return kwargs['db']
    for arg in args:
        if isinstance(arg, Session):
            return arg
    return None


def transactional(func):
    """
    Transaction decorator: commit when the wrapped call returns, roll back
    when it raises.

    Usage:
        @transactional
        def some_business_logic(db: Session, ...):
            zone = Zone(...)
            db.add(zone)
            # no manual commit, the decorator does it

    On failure:
        - the session is rolled back
        - the exception is re-raised for the caller to handle

    Notes:
        - the Session may be any positional argument (methods receive self
          first) or the `db` keyword
        - do not commit inside the wrapped function
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        db = _find_session(args, kwargs)

        if db is None:
            raise ValueError(
                f"@transactional requires a 'db: Session' argument, "
                f"but got args={args}, kwargs={kwargs}"
            )

        try:
            result = func(*args, **kwargs)
            db.commit()
            return result
        except ZoneClashException as e:
            logger.info(f"Transaction rejected in {func.__name__}: {e}")
            db.rollback()
            raise
        except Exception as e:
            logger.error(f"Transaction failed in {func.__name__}: {e}", exc_info=True)
            db.rollback()
            raise

    return wrapper

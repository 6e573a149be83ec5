import logging
from contextlib import contextmanager
from functools import wraps

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from models import db
from security.errors import DuplicateRecord, StorageError, StorageTimeout

logger = logging.getLogger(__name__)

# driver messages that mean "gave up waiting" rather than "failed"
_TIMEOUT_MARKERS = (
    "database is locked",             # sqlite busy timeout
    "canceling statement due to statement timeout",  # postgres
    "lock timeout",
    "timeout expired",
    "timed out",
)


def _is_timeout(exc: OperationalError) -> bool:
    text = str(exc.orig if exc.orig is not None else exc).lower()
    return any(marker in text for marker in _TIMEOUT_MARKERS)


@contextmanager
def storage_guard():
    """
    Translates SQLAlchemy failures into StorageError/StorageTimeout and
    rolls the session back so the next call starts clean.
    """
    try:
        yield
    except IntegrityError as exc:
        db.session.rollback()
        raise DuplicateRecord(str(exc.orig)) from exc
    except PoolTimeoutError as exc:
        db.session.rollback()
        logger.error("storage pool timeout: %s", exc)
        raise StorageTimeout("no database connection available in time") from exc
    except OperationalError as exc:
        db.session.rollback()
        if _is_timeout(exc):
            logger.error("storage timeout: %s", exc.orig)
            raise StorageTimeout(str(exc.orig)) from exc
        raise StorageError(str(exc.orig)) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError(str(exc)) from exc


def guarded(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        with storage_guard():
            return fn(*args, **kwargs)
    return wrapper


def engine_options(database_uri: str, timeout: float) -> dict:
    """
    Engine options that bound every store call by ``timeout`` seconds.
    """
    if database_uri.startswith("sqlite"):
        return {"connect_args": {"timeout": timeout}}

    options = {"pool_timeout": timeout, "pool_pre_ping": True}
    if database_uri.startswith("postgresql"):
        options["connect_args"] = {
            "connect_timeout": max(int(timeout), 1),
            "options": f"-c statement_timeout={int(timeout * 1000)}",
        }
    return options

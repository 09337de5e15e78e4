import logging
import time
from functools import wraps

from django.db import InterfaceError, OperationalError, close_old_connections

logger = logging.getLogger(__name__)

TRANSIENT_DB_ERRORS = (OperationalError, InterfaceError)


def retry_on_db_error(func=None, *, retries: int = 1, delay: float = 0.5):
    """
    Retry a read-only callable when the connection drops mid-query.

    Stale pooled connections are closed before the next attempt so Django
    opens a fresh one. Never wrap writes with this.
    """

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return fn(*args, **kwargs)
                except TRANSIENT_DB_ERRORS as exc:
                    if attempt >= retries:
                        raise
                    attempt += 1
                    logger.warning(
                        "Transient database error in %s (attempt %s/%s): %s",
                        fn.__name__,
                        attempt,
                        retries,
                        exc,
                    )
                    close_old_connections()
                    if delay:
                        time.sleep(delay)

        return wrapper

    if func is not None:
        return decorator(func)
    return decorator

"""TALLY — Error Taxonomy & Operation Results.

Engine operations never raise across their boundary for expected failures.
Internally they raise one of the ``EngineError`` subclasses below; the
``engine_operation`` decorator rolls the session back and converts the error
into an ``OperationResult`` carrying a success flag and a message.
Programming errors (e.g. an unknown cadence) still propagate.
"""

import functools
import time
from typing import Any, Callable, Optional

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from tally.core.logging import get_logger

logger = get_logger("errors")


class EngineError(Exception):
    """Base class for expected, caller-visible failures."""

    error_type = "engine_error"
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(EngineError):
    """Bad metric definition: name, cadence, scoring mode or target combination."""

    error_type = "validation_error"
    status_code = 400


class InvalidValue(EngineError):
    """A raw entry value (or period date) that cannot be parsed."""

    error_type = "invalid_value"
    status_code = 400


class NotFound(EngineError):
    error_type = "not_found"
    status_code = 404


class Conflict(EngineError):
    """Operation not allowed in the current lifecycle state."""

    error_type = "conflict"
    status_code = 409


class PersistenceFailure(EngineError):
    """Store-layer error. The message is the store's own, unmodified."""

    error_type = "persistence_failure"
    status_code = 500


class OperationResult(BaseModel):
    """Envelope returned by every engine operation."""

    success: bool
    error: Optional[str] = None
    error_type: Optional[str] = None
    data: Any = None

    model_config = {"arbitrary_types_allowed": True}

    @classmethod
    def ok(cls, data: Any = None) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: EngineError) -> "OperationResult":
        return cls(success=False, error=error.message, error_type=error.error_type)

    @property
    def status_code(self) -> int:
        """HTTP status equivalent of this result."""
        if self.success:
            return 200
        for cls in EngineError.__subclasses__():
            if cls.error_type == self.error_type:
                return cls.status_code
        return 400


def engine_operation(name: str) -> Callable:
    """Wrap a ``fn(session, ...)`` operation so it returns an OperationResult.

    On any ``EngineError`` or SQLAlchemy error the session is rolled back so
    no partial write survives.
    """

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(session: Session, *args, **kwargs) -> OperationResult:
            started = time.perf_counter()
            try:
                data = fn(session, *args, **kwargs)
            except EngineError as e:
                session.rollback()
                logger.warning(
                    f"{name} rejected: {e.message}",
                    extra={"operation": name, "error_type": e.error_type},
                )
                return OperationResult.fail(e)
            except SQLAlchemyError as e:
                session.rollback()
                failure = PersistenceFailure(str(e))
                logger.error(
                    f"{name} failed in store: {failure.message}",
                    extra={"operation": name, "error_type": failure.error_type},
                )
                return OperationResult.fail(failure)
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            logger.debug(
                f"{name} completed",
                extra={"operation": name, "duration_ms": duration_ms},
            )
            return OperationResult.ok(data)

        return wrapper

    return decorator

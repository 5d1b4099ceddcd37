"""
Engine error -> HTTP status.

404  missing tournament/group/match/bracket
422  the request itself is invalid (sets, sizes, entrant pool, rules)
409  the request conflicts with the current state of the stage
"""
from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException

from arenadraw.exceptions import (
    EngineError,
    InsufficientEntrants,
    InvalidBracketSize,
    InvalidGroupConfiguration,
    InvalidSetResult,
    NotFound,
)

UNPROCESSABLE = (
    InsufficientEntrants,
    InvalidBracketSize,
    InvalidGroupConfiguration,
    InvalidSetResult,
)


def error_code(exc: Exception) -> str:
    """'MatchAlreadyCompleted' -> 'MATCH_ALREADY_COMPLETED'"""
    name = type(exc).__name__
    return "".join("_" + c if c.isupper() and i else c for i, c in enumerate(name)).upper()


def to_http(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFound):
        status = 404
    elif isinstance(exc, UNPROCESSABLE) or isinstance(exc, ValueError):
        status = 422
    else:
        status = 409
    return HTTPException(status_code=status, detail=f"{error_code(exc)}: {exc}")


@contextmanager
def engine_errors() -> Iterator[None]:
    """Translate engine errors raised inside the block into HTTPException."""
    try:
        yield
    except (EngineError, ValueError) as exc:
        raise to_http(exc) from exc

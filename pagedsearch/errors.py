from __future__ import annotations

from typing import Any, Optional


class SearchError(Exception):
    """Base class for every error raised by a search or a (re)connect."""

    code: Any = "search_error"

    def __init__(self, message: str, code: Any = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class InvalidRequest(SearchError):
    """Caller input is unusable. Raised before the engine is touched."""

    code = "invalid_request"


class EngineError(SearchError):
    """The index engine failed while creating a context, filtering or executing."""

    code = "engine_error"


class ConnectError(SearchError):
    """The index handle could not be opened."""

    code = "connect_error"


class SearchCancelled(SearchError):
    """The caller cancelled the search or its timeout elapsed."""

    code = "cancelled"


def engine_error_from(exc: Exception, prefix: str, cls: Optional[type] = None) -> SearchError:
    """Build an EngineError (or ``cls``) from an opensearch-py exception.

    TransportError carries ``status_code``, ``error`` and ``info``; the root
    cause reason is pulled out of ``info`` when the server sent one.
    """
    cls = cls or EngineError
    status = getattr(exc, "status_code", None)
    error = getattr(exc, "error", None)
    info = getattr(exc, "info", None)
    reason = None
    if isinstance(info, dict):
        err = info.get("error")
        if isinstance(err, dict):
            causes = err.get("root_cause") or []
            if causes and isinstance(causes[0], dict):
                reason = causes[0].get("reason")
            reason = reason or err.get("reason")
        elif isinstance(err, str):
            reason = err
    if error is None or not isinstance(error, str):
        error = type(exc).__name__
    message = f"{prefix}: {error}: {reason or exc}"
    code = status if isinstance(status, int) else None
    return cls(message, code=code)

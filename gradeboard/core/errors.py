"""Error taxonomy shared by the store, collector, and HTTP layer."""

from __future__ import annotations


class GradeboardError(Exception):
    """Base error carrying the HTTP status it maps to."""

    status_code: int = 500

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ClientInputError(GradeboardError):
    """Missing or malformed student identifier / course index."""

    status_code = 400


class NotFoundError(GradeboardError):
    status_code = 404


class DataUnavailableError(GradeboardError):
    """Collection reported success but produced no readable analysis file."""

    status_code = 500


class ParseError(GradeboardError, ValueError):
    """On-disk JSON could not be read or did not have the expected root."""

    status_code = 500


class SubprocessFailureError(GradeboardError):
    """An external collection stage exited non-zero, timed out, or never started."""

    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        stage: str,
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.stage = stage
        self.returncode = returncode
        self.stderr = stderr


__all__ = [
    "ClientInputError",
    "DataUnavailableError",
    "GradeboardError",
    "NotFoundError",
    "ParseError",
    "SubprocessFailureError",
]

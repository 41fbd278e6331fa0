"""\
Import failures.

ConverterFailure and its subclasses describe one bad record. Converters raise
them internally and `tachi.importers.run_converter` turns them into return
values, so a bad record never aborts its batch. ScoreImportFatalError fails
the whole import.
"""

from __future__ import annotations

from typing import Any


class ConverterFailure(Exception):
    # the error type reported in an import document
    error_type = "InternalError"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidScoreFailure(ConverterFailure):
    """The record is malformed or describes an impossible score."""

    error_type = "InvalidDatapoint"


class KTDataNotFoundFailure(ConverterFailure):
    """The record references a chart or song we don't know about."""

    error_type = "KTDataNotFound"

    def __init__(
        self,
        message: str,
        import_type: str,
        data: Any,
        context: dict[str, Any],
    ) -> None:
        super().__init__(message)
        self.import_type = import_type
        self.data = data
        self.context = context


class InternalFailure(ConverterFailure):
    """Our own reference data is inconsistent, e.g. a chart whose song is missing."""

    error_type = "InternalError"


class SkipScoreFailure(ConverterFailure):
    """The record is valid but deliberately not imported."""

    error_type = "SkippedScore"


class ScoreImportFatalError(Exception):
    """The whole import failed and no record was processed."""

    def __init__(self, status_code: int, description: str) -> None:
        super().__init__(description)
        self.status_code = status_code
        self.description = description


class ImportLockHeld(ScoreImportFatalError):
    def __init__(self, user_id: int) -> None:
        super().__init__(409, f"An import is already ongoing for user {user_id}.")
        self.user_id = user_id


class LockContentionExhausted(ScoreImportFatalError):
    def __init__(self, user_id: int, attempts: int) -> None:
        super().__init__(
            409,
            f"Could not acquire the import lock for user {user_id} after {attempts} attempts.",
        )
        self.user_id = user_id
        self.attempts = attempts

"""Security validation exceptions."""

from core.errors.exceptions import PermanentError


class DocumentSecurityError(PermanentError):
    """
    Raised when an uploaded document fails the security gate.

    The whole document is rejected; no records are produced from it.
    """

    def __init__(
        self,
        message: str,
        errors: list[str] | None = None,
        warnings: list[str] | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause=cause, context={"errors": list(errors or [])})
        self.errors = list(errors or [message])
        self.warnings = list(warnings or [])


class DocumentFormatError(PermanentError):
    """Raised when a document is structurally unusable (malformed, empty, no data)."""

    pass

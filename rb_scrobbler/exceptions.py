"""Exception hierarchy for rb-scrobbler."""

from typing import Optional


class ScrobblerError(Exception):
    """Base class for all rb-scrobbler errors."""


# --- Parsing ---------------------------------------------------------------


class ParseError(ScrobblerError):
    """The log file cannot be read as an Audioscrobbler log."""


class UnsupportedVersionError(ParseError):
    """The header is missing or declares a version we do not understand."""

    def __init__(self, version: Optional[str] = None):
        self.version = version
        if version is None:
            message = "Missing #AUDIOSCROBBLER header"
        else:
            message = f"Unsupported log version: {version}"
        super().__init__(message)


class LineError(ParseError):
    """A single record line could not be turned into a LogRecord."""

    def __init__(self, line_number: int, message: str):
        self.line_number = line_number
        self.message = message
        super().__init__(f"line {line_number}: {message}")


class MalformedLineError(LineError):
    """Wrong number of tab-separated fields."""

    def __init__(self, line_number: int, expected: int, found: int):
        self.expected = expected
        self.found = found
        super().__init__(line_number, f"expected {expected} fields, found {found}")


class ValidationError(LineError):
    """A field has the right position but an invalid value."""

    def __init__(self, line_number: int, field: str, message: str):
        self.field = field
        super().__init__(line_number, f"{field}: {message}")


# --- Authentication --------------------------------------------------------


class AuthError(ScrobblerError):
    """Authentication with the scrobbling service failed."""


class InvalidCredentialsError(AuthError):
    """The service rejected the API key, secret or user credentials."""


class ServiceUnavailableError(AuthError):
    """Network failure or server-side error during the handshake."""


class AuthProtocolError(AuthError):
    """The handshake response did not have the expected shape."""


class SessionExpiredError(AuthError):
    """The session key was rejected again right after re-authenticating."""


# --- Submission ------------------------------------------------------------


class SubmitError(ScrobblerError):
    """A batch could not be submitted."""

    transient = False


class TransientSubmitError(SubmitError):
    """Retries were exhausted on a temporary failure."""

    transient = True


class RejectedBatchError(SubmitError):
    """The service refused the request itself (client bug or bad data)."""

    def __init__(self, message: str, code: Optional[int] = None):
        self.code = code
        super().__init__(message)


class SubmitProtocolError(SubmitError):
    """The submission response did not have the expected shape."""


# --- Coordinator -----------------------------------------------------------


class NoRecordsError(ScrobblerError):
    """Parsing produced nothing that could be submitted."""

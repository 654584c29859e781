"""
errors.py - Error types shared by the audit pipeline and the web server.

Every failure the auditor can report falls into one of these classes, so
the HTTP layer can tell a bad URL apart from an operational problem
(missing credential, timeout) without inspecting message strings.
"""


class AuditError(Exception):
    """Base class for every error raised by the auditor."""


class ConfigurationError(AuditError):
    """Raised when the process configuration is missing or invalid."""


class AcquisitionError(AuditError):
    """
    Raised when the target page could not be loaded.

    `kind` is one of TIMEOUT, NETWORK_FAILURE, AUTH_FAILURE, MALFORMED_URL.
    """

    TIMEOUT = "Timeout"
    NETWORK_FAILURE = "NetworkFailure"
    AUTH_FAILURE = "AuthFailure"
    MALFORMED_URL = "MalformedURL"

    KINDS = (TIMEOUT, NETWORK_FAILURE, AUTH_FAILURE, MALFORMED_URL)

    def __init__(self, kind, message):
        if kind not in self.KINDS:
            raise ValueError(f"Unknown acquisition error kind: {kind!r}")
        super().__init__(message)
        self.kind = kind
        self.message = message

    def to_dict(self):
        return {"kind": self.kind, "message": self.message}

    def __reduce__(self):
        # Keeps the error picklable across the audit subprocess boundary.
        return (self.__class__, (self.kind, self.message))


class ScanError(AuditError):
    """Raised when the accessibility engine could not be loaded or run."""


class RenderingError(AuditError):
    """Raised when the PDF document could not be produced."""


def redact(text, secret):
    """Remove a secret (e.g. the rendering-service token) from a message."""
    text = str(text)
    if not secret:
        return text
    return text.replace(secret, "***")

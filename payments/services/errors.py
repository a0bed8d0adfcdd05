class DarajaError(Exception):
    """Base class for every error raised by the Daraja client."""


class ConfigurationError(DarajaError):
    def __init__(self, message, missing=None):
        super().__init__(message)
        self.missing = list(missing or [])

    @classmethod
    def for_missing(cls, missing):
        return cls(
            f"Missing required configuration: {', '.join(missing)}. "
            "Provide them in the environment (.env) or pass them to the client.",
            missing=missing,
        )


class AuthenticationError(DarajaError):
    """The consumer key/secret exchange for an access token failed."""


class OperationError(DarajaError):
    """Daraja answered an API call with an error."""

    def __init__(self, message, operation=None, status_code=None, body=None):
        super().__init__(message)
        self.operation = operation
        self.status_code = status_code
        self.body = body


class TransportError(DarajaError):
    """No response was received (connection failure or timeout)."""

    def __init__(self, message, operation=None):
        super().__init__(message)
        self.operation = operation

from .config import DarajaConfig
from .errors import (
    AuthenticationError,
    ConfigurationError,
    DarajaError,
    OperationError,
    TransportError,
)
from .mpesa import DarajaClient

__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "DarajaClient",
    "DarajaConfig",
    "DarajaError",
    "OperationError",
    "TransportError",
]

"""Relay error types."""
from chatrelay.utils.errors.exceptions import (
    RelayError,
    LoadTimeout,
    LoginRequired,
    ContactNotFound,
    ExtractionTimeout,
    SessionFault,
    DeliveryFailure,
    Unauthorized,
    ConfigError,
    DriverTimeout,
    DriverError,
    describe_error,
)

__all__ = [
    "RelayError",
    "LoadTimeout",
    "LoginRequired",
    "ContactNotFound",
    "ExtractionTimeout",
    "SessionFault",
    "DeliveryFailure",
    "Unauthorized",
    "ConfigError",
    "DriverTimeout",
    "DriverError",
    "describe_error",
]

"""Request vocabulary and transports for the analysis service."""

from .protocol import (
    FailureKind,
    Key,
    RequestName,
    ServiceConnection,
    ServiceFailure,
    ServiceRequest,
    ServiceResponse,
    Value,
)
from .subprocess_connection import SubprocessConnection

__all__ = [
    "FailureKind",
    "Key",
    "RequestName",
    "ServiceConnection",
    "ServiceFailure",
    "ServiceRequest",
    "ServiceResponse",
    "SubprocessConnection",
    "Value",
]

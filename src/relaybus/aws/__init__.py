"""SQS/SNS transport (install with the ``aws`` extra)."""

from .connection import AwsConnectionManager
from .transport import FATAL_ERROR_CODES, AwsTransport, classify_error

__all__ = [
    "FATAL_ERROR_CODES",
    "AwsConnectionManager",
    "AwsTransport",
    "classify_error",
]

"""Middleware pipeline and the inbound middleware library."""

from .backoff import BackoffMiddleware
from .dead_letter import DeadLetterHandler, DeadLetterMiddleware
from .error_handler import ErrorHandlerMiddleware
from .exactly_once import ExactlyOnceMiddleware
from .filtering import MessageFilterMiddleware
from .handler import HandlerInvocation
from .logging import HandleLoggingMiddleware
from .pipeline import build_pipeline
from .stopwatch import StopwatchMiddleware
from .timeout import HandlerTimeoutMiddleware

__all__ = [
    "BackoffMiddleware",
    "DeadLetterHandler",
    "DeadLetterMiddleware",
    "ErrorHandlerMiddleware",
    "ExactlyOnceMiddleware",
    "HandleLoggingMiddleware",
    "HandlerInvocation",
    "HandlerTimeoutMiddleware",
    "MessageFilterMiddleware",
    "StopwatchMiddleware",
    "build_pipeline",
]

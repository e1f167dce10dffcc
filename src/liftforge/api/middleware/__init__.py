"""API middleware components.

This module exports the correlation ID middleware and the error handler
setup used by the application factory.
"""

from liftforge.api.middleware.correlation import CorrelationIdMiddleware
from liftforge.api.middleware.error_handler import setup_error_handlers

__all__ = ["CorrelationIdMiddleware", "setup_error_handlers"]

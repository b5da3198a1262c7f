"""
Base classes and utilities for the service layer.

This module provides the ServiceResult pattern (inspired by Rust's Result type)
and the BaseService class shared by the ordering services.
"""

import logging
import time
from dataclasses import dataclass
from functools import wraps
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    A result type that encapsulates success or failure from service operations.

    Expected failures (missing order, wrong caller, bad state) are returned,
    not raised, so views can map them to HTTP responses in one place.

    Attributes:
        ok: True if operation succeeded, False otherwise
        value: The success value (present if ok=True)
        error: Error code (present if ok=False)
        error_detail: Human-readable error message (present if ok=False)

    Examples:
        >>> result = service_ok(order)
        >>> if result.ok:
        ...     return Response(OrderSerializer(result.value).data, 200)

        >>> result = service_err("order_not_found", "Order 123 does not exist")
        >>> print(result.error)  # "order_not_found"
    """

    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_detail: Optional[str] = None


def service_ok(value: T) -> ServiceResult[T]:
    """
    Create a successful ServiceResult.

    Args:
        value: The success value

    Returns:
        ServiceResult with ok=True and the value
    """
    return ServiceResult(ok=True, value=value)


def service_err(error: str, error_detail: str = "") -> ServiceResult:
    """
    Create a failed ServiceResult.

    Args:
        error: Error code (e.g., "order_not_found", "invalid_input")
        error_detail: Human-readable error message

    Returns:
        ServiceResult with ok=False and error information

    Example:
        >>> return service_err(ErrorCodes.ORDER_NOT_FOUND, f"Order {order_id} does not exist")
    """
    return ServiceResult(ok=False, error=error, error_detail=error_detail or error)


class BaseService:
    """
    Base class for all services providing common functionality.

    Provides:
    - Logging with class name
    - Performance timing decorator

    Usage:
        class OrderService(BaseService):
            def __init__(self, payment_provider):
                super().__init__()
                self.payment_provider = payment_provider

            @BaseService.log_performance
            def start_work(self, order_id, user):
                self.logger.info(f"Starting work on {order_id}")
                # ... implementation
    """

    def __init__(self):
        """Initialize base service with logger."""
        self.logger = logging.getLogger(self.__class__.__module__ + "." + self.__class__.__name__)

    @staticmethod
    def log_performance(func: Callable) -> Callable:
        """
        Decorator to log performance of service methods.

        Logs execution time and the error code of failed results.

        Args:
            func: The service method to wrap

        Returns:
            Wrapped function with performance logging
        """

        @wraps(func)
        def wrapper(self, *args, **kwargs):
            start_time = time.time()
            method_name = f"{self.__class__.__name__}.{func.__name__}"

            try:
                self.logger.debug(f"{method_name} started")
                result = func(self, *args, **kwargs)
                elapsed_time = (time.time() - start_time) * 1000  # Convert to ms

                if isinstance(result, ServiceResult):
                    if result.ok:
                        self.logger.info(f"{method_name} completed successfully in {elapsed_time:.2f}ms")
                    else:
                        self.logger.warning(
                            f"{method_name} failed with error '{result.error}' in {elapsed_time:.2f}ms"
                        )
                else:
                    self.logger.info(f"{method_name} completed in {elapsed_time:.2f}ms")

                return result

            except Exception as e:
                elapsed_time = (time.time() - start_time) * 1000
                self.logger.error(
                    f"{method_name} raised exception after {elapsed_time:.2f}ms: {str(e)}",
                    exc_info=True,
                )
                raise

        return wrapper


class ErrorCodes:
    """Standard error codes used across the ordering services."""

    # Not found
    GIG_NOT_FOUND = "gig_not_found"
    ORDER_NOT_FOUND = "order_not_found"

    # Permission errors
    NOT_ORDER_PARTY = "not_order_party"

    # State and validation errors
    INVALID_ORDER_STATE = "invalid_order_state"
    INVALID_INPUT = "invalid_input"

    # Payment reconciliation errors
    INVALID_SIGNATURE = "invalid_signature"
    MISSING_METADATA = "missing_metadata"
    PAYMENT_NOT_COMPLETED = "payment_not_completed"
    PAYMENT_PROVIDER_ERROR = "payment_provider_error"

    # Internal errors
    INTERNAL_ERROR = "internal_error"

"""
Transaction Helper Service

Unit-of-work boundaries for service operations:
- One commit per successful operation
- Rollback and re-raise on any failure, so no partial state is persisted
- No internal retries; callers decide whether to retry
"""

from functools import wraps
from typing import Callable
import logging

logger = logging.getLogger(__name__)


class TransactionHelper:
    """Helper class for managing database transactions safely"""

    @staticmethod
    def with_transaction(func: Callable) -> Callable:
        """
        Decorator that wraps a service method in a database transaction.
        The service instance must expose the session as `self.session`.

        Usage:
            @TransactionHelper.with_transaction
            def clock_out(self, driver_id, end_odometer):
                # Your database operations here
                pass
        """
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            session = self.session
            try:
                result = func(self, *args, **kwargs)
                session.commit()
                return result
            except Exception as e:
                session.rollback()
                logger.warning(f"Transaction rolled back in {func.__name__}: {type(e).__name__}: {str(e)}")
                raise
        return wrapper

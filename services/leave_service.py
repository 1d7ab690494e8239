"""
Leave Service

Read-side leave figures used by payroll and shown to drivers.
"""

from typing import Dict, Any
import logging

from .exceptions import DriverNotFound
from .stores import ANNUAL_LEAVE_ENTITLEMENT

logger = logging.getLogger(__name__)


class LeaveService:
    """Service class for driver leave balances"""

    def __init__(self, leave_store, driver_store):
        self.leave_store = leave_store
        self.driver_store = driver_store

    def get_annual_leave_balance(self, driver_id: int, year: int) -> Dict[str, Any]:
        """
        Annual leave entitlement, approved usage and remaining days for a year.

        Returns:
            dict: total, used, remaining, year
        """
        if not self.driver_store.get(driver_id):
            raise DriverNotFound(driver_id)

        used = self.leave_store.count_approved_annual_leave(driver_id, year)
        return {
            'total': ANNUAL_LEAVE_ENTITLEMENT,
            'used': used,
            'remaining': max(0, ANNUAL_LEAVE_ENTITLEMENT - used),
            'year': year
        }

    def get_leave_usage(self, driver_id: int, year: int, month: int = None) -> Dict[str, Any]:
        usage = self.leave_store.get_leave_usage(driver_id, year, month)
        return {
            'driver_id': driver_id,
            'year': year,
            'month': month,
            'paid_leaves': usage.paid_leaves,
            'unpaid_leaves': usage.unpaid_leaves,
            'total': usage.total
        }

"""
Service Layer Architecture

This package contains the shift lifecycle and payroll business logic. Services provide:

1. **Transaction Management**: Atomic operations with proper rollback
2. **Business Logic Separation**: Callers (CLI, web handlers) pass plain data in
3. **Testability**: Stores and services are built from an injected session
4. **Error Handling**: Typed exceptions carrying codes and numeric limits

Services Architecture:
- **ShiftService**: Clock-in/clock-out lifecycle, odometer continuity, driver status
- **AdminShiftService**: Manual shift entry, corrections and deletion with audit trail
- **PayrollService**: Monthly payroll per driver and for all active drivers
- **PayrollConfigService**: Versioned payroll configuration
- **AdvanceEligibilityService**: Salary advance eligibility envelope
- **AdvancePaymentService**: Advance request, approval, payment and settlement
- **LeaveService**: Annual leave balance and leave usage
- **AuditService**: Centralized audit logging
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from timezone_utils import get_business_timezone
from .audit_service import AuditService
from .transaction_helper import TransactionHelper
from .stores import DriverStore, ShiftStore, PayrollConfigStore, LeaveStore, AdvanceStore
from .working_time import StandardWindow
from .shift_service import ShiftService, AdminShiftService, ManualShiftRequest, ShiftUpdateRequest
from .payroll_service import PayrollService, PayrollBreakdown
from .payroll_config_service import PayrollConfigService
from .advance_service import AdvanceEligibilityService, AdvancePaymentService, EligibilityResult
from .leave_service import LeaveService


@dataclass(frozen=True)
class Services:
    shift_service: ShiftService
    admin_shift_service: AdminShiftService
    payroll_service: PayrollService
    config_service: PayrollConfigService
    eligibility_service: AdvanceEligibilityService
    advance_service: AdvancePaymentService
    leave_service: LeaveService
    audit_service: AuditService


def build_services(session, config: Optional[Mapping[str, Any]] = None) -> Services:
    """
    Wire every service against one session.

    Args:
        session: SQLAlchemy session owned by the caller
        config: Application settings (BUSINESS_TIMEZONE, OVERTIME_WINDOW_START/END)

    Returns:
        Services
    """
    config = config or {}
    tz = get_business_timezone(config.get('BUSINESS_TIMEZONE'))
    window = StandardWindow(
        start=float(config.get('OVERTIME_WINDOW_START', 8)),
        end=float(config.get('OVERTIME_WINDOW_END', 20))
    )

    driver_store = DriverStore(session)
    shift_store = ShiftStore(session)
    config_store = PayrollConfigStore(session)
    leave_store = LeaveStore(session)
    advance_store = AdvanceStore(session)
    audit_service = AuditService(session)

    eligibility_service = AdvanceEligibilityService(advance_store, shift_store, config_store, tz=tz)

    return Services(
        shift_service=ShiftService(session, shift_store, driver_store, tz=tz),
        admin_shift_service=AdminShiftService(session, shift_store, driver_store, audit_service, tz=tz),
        payroll_service=PayrollService(driver_store, shift_store, config_store, leave_store, advance_store,
                                       window=window, tz=tz),
        config_service=PayrollConfigService(session, config_store, audit_service),
        eligibility_service=eligibility_service,
        advance_service=AdvancePaymentService(session, advance_store, driver_store, eligibility_service,
                                              audit_service, tz=tz),
        leave_service=LeaveService(leave_store, driver_store),
        audit_service=audit_service
    )


__all__ = [
    'build_services',
    'Services',
    'ShiftService',
    'AdminShiftService',
    'ManualShiftRequest',
    'ShiftUpdateRequest',
    'PayrollService',
    'PayrollBreakdown',
    'PayrollConfigService',
    'AdvanceEligibilityService',
    'AdvancePaymentService',
    'EligibilityResult',
    'LeaveService',
    'AuditService',
    'TransactionHelper'
]

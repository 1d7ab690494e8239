"""
Advance Payment Services

Salary advance eligibility envelope and the advance request workflow:
pending -> approved -> paid -> settled, or pending -> rejected.

Advances are requested against expected pay, so eligibility uses a flat
monthly earnings estimate rather than the payroll calculation over worked
shifts. The estimate lives in one place, `estimate_monthly_earnings`.
"""

import re
from dataclasses import dataclass, field, fields
from datetime import date, datetime, timedelta
from typing import Optional, Dict, Any, List
import logging

from models import AdvancePayment, AdvanceStatus, OUTSTANDING_ADVANCE_STATUSES
from timezone_utils import get_business_timezone, utc_now, to_utc_naive, business_today
from .transaction_helper import TransactionHelper
from .exceptions import (InvalidInput, DriverNotFound, AdvanceNotFound, InvalidAdvanceState,
                         AdvanceNotEligible)

logger = logging.getLogger(__name__)

ASSUMED_WORKING_DAYS = 25
FALLBACK_MONTHLY_SALARY = 27000.0
FALLBACK_FUEL_ALLOWANCE = 33.30
EARNINGS_HISTORY_DAYS = 90

PAYROLL_MONTH_PATTERN = re.compile(r'^\d{4}-(0[1-9]|1[0-2])$')


@dataclass(frozen=True)
class AdvanceConfigValues:
    max_advance_percentage: float = 60.0
    max_requests_per_month: int = 3
    min_advance_amount: float = 500.0
    max_advance_amount: float = 20000.0

    @classmethod
    def from_model(cls, config) -> 'AdvanceConfigValues':
        """Stored config with defaults for unset columns; no row means all defaults"""
        defaults = cls()
        if config is None:
            return defaults
        values = {}
        for attr in fields(cls):
            stored = getattr(config, attr.name, None)
            # zero is a deliberate setting, only NULL falls back
            values[attr.name] = getattr(defaults, attr.name) if stored is None else stored
        return cls(**values)


@dataclass(frozen=True)
class EligibilityResult:
    eligible: bool
    max_advance_amount: float
    current_outstanding: float
    available_amount: float
    monthly_earnings_estimate: float
    max_advance_limit: float
    current_month_requests: int
    config: AdvanceConfigValues
    checks: Dict[str, bool] = field(default_factory=dict)
    restrictions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'eligible': self.eligible,
            'max_advance_amount': round(self.max_advance_amount, 2),
            'current_outstanding': round(self.current_outstanding, 2),
            'available_amount': round(self.available_amount, 2),
            'monthly_earnings_estimate': round(self.monthly_earnings_estimate, 2),
            'max_advance_limit': round(self.max_advance_limit, 2),
            'advance_limit_percentage': self.config.max_advance_percentage,
            'restrictions': list(self.restrictions),
            'config': {
                'min_advance_amount': self.config.min_advance_amount,
                'max_advance_amount': self.config.max_advance_amount,
                'max_requests_per_month': self.config.max_requests_per_month,
                'current_month_requests': self.current_month_requests
            },
            'checks': dict(self.checks)
        }


def estimate_monthly_earnings(payroll_config) -> float:
    """Expected monthly pay: salary plus fuel allowance for an assumed 25 working days"""
    if payroll_config is None:
        return FALLBACK_MONTHLY_SALARY + FALLBACK_FUEL_ALLOWANCE * ASSUMED_WORKING_DAYS
    return payroll_config.monthly_salary + payroll_config.fuel_allowance * ASSUMED_WORKING_DAYS


def format_rupees(amount: float) -> str:
    return f"₹{amount:,.2f}"


def can_admin_approve(eligibility: EligibilityResult, amount: float) -> bool:
    """
    Admin approval may override the monthly request limit, and only that
    check; the amount must still fit the available balance.
    """
    overridable = ('within_monthly_request_limit',)
    others_pass = all(passed for name, passed in eligibility.checks.items() if name not in overridable)
    return others_pass and amount <= eligibility.available_amount


class AdvanceEligibilityService:
    """Service class for salary advance eligibility"""

    def __init__(self, advance_store, shift_store, config_store, tz=None):
        self.advance_store = advance_store
        self.shift_store = shift_store
        self.config_store = config_store
        self.tz = tz or get_business_timezone()

    def get_advance_config(self) -> AdvanceConfigValues:
        return AdvanceConfigValues.from_model(self.advance_store.get_config())

    def _current_month_request_count(self, driver_id: int, now: datetime) -> int:
        today = business_today(now, self.tz)
        month_start = date(today.year, today.month, 1)
        if today.month == 12:
            month_end = date(today.year + 1, 1, 1)
        else:
            month_end = date(today.year, today.month + 1, 1)
        return self.advance_store.count_requests_between(driver_id, month_start, month_end)

    def calculate_eligibility(self, driver_id: int, requested_amount: Optional[float] = None,
                              now: Optional[datetime] = None) -> EligibilityResult:
        """
        Work out how much advance a driver may request, and whether a given
        amount is approvable.

        Args:
            driver_id: ID of driver
            requested_amount: Amount to check, or None for the envelope only
            now: Reference instant, defaults to the current time

        Returns:
            EligibilityResult
        """
        now = to_utc_naive(now) if now else utc_now()
        config = self.get_advance_config()

        monthly_earnings_estimate = estimate_monthly_earnings(self.config_store.get_current(now))
        max_advance_limit = monthly_earnings_estimate * (config.max_advance_percentage / 100)

        current_outstanding = self.advance_store.get_outstanding_total(driver_id)
        available_amount = max(0.0, max_advance_limit - current_outstanding)
        current_month_requests = self._current_month_request_count(driver_id, now)
        has_history = self.shift_store.has_completed_shift_since(
            driver_id, now - timedelta(days=EARNINGS_HISTORY_DAYS)
        )

        amount_given = requested_amount is not None
        checks = {
            'has_earnings_history': has_history,
            'within_advance_limit': requested_amount <= available_amount if amount_given else True,
            'within_monthly_request_limit': current_month_requests < config.max_requests_per_month,
            'meets_minimum_amount': requested_amount >= config.min_advance_amount if amount_given else True,
            'within_maximum_amount': requested_amount <= config.max_advance_amount if amount_given else True,
            'no_excessive_outstanding': current_outstanding < max_advance_limit
        }

        restrictions = []
        if not checks['has_earnings_history']:
            restrictions.append('No earnings history available')
        if not checks['within_advance_limit']:
            restrictions.append(f"Exceeds available advance limit of {format_rupees(available_amount)}")
        if not checks['within_monthly_request_limit']:
            restrictions.append(f"Monthly request limit exceeded "
                                f"({current_month_requests}/{config.max_requests_per_month})")
        if not checks['meets_minimum_amount']:
            restrictions.append(f"Below minimum advance amount of {format_rupees(config.min_advance_amount)}")
        if not checks['within_maximum_amount']:
            restrictions.append(f"Exceeds maximum advance amount of {format_rupees(config.max_advance_amount)}")
        if not checks['no_excessive_outstanding']:
            restrictions.append(f"Outstanding advances of {format_rupees(current_outstanding)} "
                                f"exceed limit of {format_rupees(max_advance_limit)}")

        return EligibilityResult(
            eligible=all(checks.values()),
            max_advance_amount=min(available_amount, config.max_advance_amount),
            current_outstanding=current_outstanding,
            available_amount=available_amount,
            monthly_earnings_estimate=monthly_earnings_estimate,
            max_advance_limit=max_advance_limit,
            current_month_requests=current_month_requests,
            config=config,
            checks=checks,
            restrictions=restrictions
        )


def _validate_amount(amount, field_name: str):
    if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount <= 0:
        raise InvalidInput(f"{field_name} must be a positive number", {'field': field_name, 'value': amount})


class AdvancePaymentService:
    """Service class for the advance request workflow"""

    def __init__(self, session, advance_store, driver_store, eligibility_service, audit_service, tz=None):
        self.session = session
        self.advance_store = advance_store
        self.driver_store = driver_store
        self.eligibility_service = eligibility_service
        self.audit_service = audit_service
        self.tz = tz or get_business_timezone()

    def _get_advance(self, advance_id: int) -> AdvancePayment:
        advance = self.advance_store.get(advance_id)
        if not advance:
            raise AdvanceNotFound(advance_id)
        return advance

    @staticmethod
    def _require_status(advance: AdvancePayment, allowed, action: str):
        if advance.status not in allowed:
            raise InvalidAdvanceState(
                f"Cannot {action} advance request with status: {advance.status.value}",
                {'advance_id': advance.id, 'status': advance.status.value,
                 'allowed': [status.value for status in allowed]}
            )

    @TransactionHelper.with_transaction
    def request_advance(self, driver_id: int, amount: float, reason: str, advance_type: str = 'regular',
                        payment_method: str = 'bank_transfer', now: Optional[datetime] = None) -> AdvancePayment:
        """
        Create a pending advance request after an eligibility check.

        Raises:
            InvalidInput, DriverNotFound, AdvanceNotEligible
        """
        _validate_amount(amount, 'amount')
        if not reason or not reason.strip():
            raise InvalidInput('Reason is required for advance requests', {'field': 'reason'})
        if not self.driver_store.get(driver_id):
            raise DriverNotFound(driver_id)

        now = to_utc_naive(now) if now else utc_now()
        eligibility = self.eligibility_service.calculate_eligibility(driver_id, amount, now)
        if not eligibility.eligible:
            logger.warning(f"Advance request rejected for driver {driver_id}: {eligibility.restrictions}")
            raise AdvanceNotEligible(eligibility)

        advance = AdvancePayment()
        advance.driver_id = driver_id
        advance.request_date = business_today(now, self.tz)
        advance.requested_amount = float(amount)
        advance.approved_amount = 0.0
        advance.advance_type = advance_type
        advance.reason = reason.strip()
        advance.payment_method = payment_method
        advance.status = AdvanceStatus.PENDING
        advance.created_at = now
        self.advance_store.add(advance)

        self.audit_service.log_action(
            action='request_advance',
            entity_type='advance_payment',
            entity_id=advance.id,
            new_values=advance.to_dict()
        )

        logger.info(f"Advance requested: ID {advance.id}, driver {driver_id}, amount ₹{amount}")
        return advance

    @TransactionHelper.with_transaction
    def approve_advance(self, advance_id: int, approved_amount: float, admin_id: Optional[int] = None,
                        payment_method: Optional[str] = None, payment_reference: Optional[str] = None,
                        notes: Optional[str] = None, now: Optional[datetime] = None) -> AdvancePayment:
        """
        Approve a pending request. Admins may exceed the monthly request limit
        but never the available advance balance.

        Raises:
            InvalidInput, AdvanceNotFound, InvalidAdvanceState, AdvanceNotEligible
        """
        _validate_amount(approved_amount, 'approved_amount')
        advance = self._get_advance(advance_id)
        self._require_status(advance, (AdvanceStatus.PENDING,), 'approve')

        now = to_utc_naive(now) if now else utc_now()
        eligibility = self.eligibility_service.calculate_eligibility(advance.driver_id, approved_amount, now)
        if not can_admin_approve(eligibility, approved_amount):
            logger.warning(f"Advance approval rejected for request {advance_id}: {eligibility.restrictions}")
            raise AdvanceNotEligible(eligibility)

        if not eligibility.checks['within_monthly_request_limit']:
            logger.warning(f"ADMIN OVERRIDE: monthly limit exceeded but advance {advance_id} approved "
                           f"(Available: ₹{eligibility.available_amount:.2f}, Approved: ₹{approved_amount})")

        old_values = advance.to_dict()
        advance.approved_amount = float(approved_amount)
        advance.status = AdvanceStatus.APPROVED
        advance.approved_by = admin_id
        advance.approved_at = now
        if payment_method:
            advance.payment_method = payment_method
        if payment_reference:
            advance.payment_reference = payment_reference
        self.session.flush()

        self.audit_service.log_action(
            action='approve_advance',
            entity_type='advance_payment',
            entity_id=advance.id,
            old_values=old_values,
            new_values=advance.to_dict(),
            changed_by=admin_id,
            notes=notes
        )

        logger.info(f"Advance approved: ID {advance_id}, amount ₹{approved_amount} by admin {admin_id}")
        return advance

    @TransactionHelper.with_transaction
    def reject_advance(self, advance_id: int, reason: str, admin_id: Optional[int] = None) -> AdvancePayment:
        if not reason or not reason.strip():
            raise InvalidInput('Rejection reason is required', {'field': 'reason'})
        advance = self._get_advance(advance_id)
        self._require_status(advance, (AdvanceStatus.PENDING,), 'reject')

        old_values = advance.to_dict()
        advance.status = AdvanceStatus.REJECTED
        advance.rejected_reason = reason.strip()
        advance.approved_by = admin_id

        self.audit_service.log_action(
            action='reject_advance',
            entity_type='advance_payment',
            entity_id=advance.id,
            old_values=old_values,
            new_values=advance.to_dict(),
            changed_by=admin_id,
            notes=advance.rejected_reason
        )

        logger.info(f"Advance rejected: ID {advance_id} by admin {admin_id}")
        return advance

    @TransactionHelper.with_transaction
    def mark_paid(self, advance_id: int, admin_id: Optional[int] = None, payment_reference: Optional[str] = None,
                  now: Optional[datetime] = None) -> AdvancePayment:
        advance = self._get_advance(advance_id)
        self._require_status(advance, (AdvanceStatus.APPROVED,), 'mark as paid')

        old_values = advance.to_dict()
        advance.status = AdvanceStatus.PAID
        advance.paid_at = to_utc_naive(now) if now else utc_now()
        if payment_reference:
            advance.payment_reference = payment_reference

        self.audit_service.log_action(
            action='mark_advance_paid',
            entity_type='advance_payment',
            entity_id=advance.id,
            old_values=old_values,
            new_values=advance.to_dict(),
            changed_by=admin_id
        )

        logger.info(f"Advance paid: ID {advance_id}, reference {payment_reference or 'n/a'}")
        return advance

    @TransactionHelper.with_transaction
    def settle_advance(self, advance_id: int, payroll_month: str, admin_id: Optional[int] = None,
                       now: Optional[datetime] = None) -> AdvancePayment:
        """
        Settle an approved or paid advance against a payroll month (YYYY-MM).
        The full approved amount is recovered from that month's payroll.
        """
        if not isinstance(payroll_month, str) or not PAYROLL_MONTH_PATTERN.match(payroll_month):
            raise InvalidInput('Payroll month must be in YYYY-MM format', {'payroll_month': payroll_month})

        advance = self._get_advance(advance_id)
        self._require_status(advance, OUTSTANDING_ADVANCE_STATUSES, 'settle')

        old_values = advance.to_dict()
        advance.status = AdvanceStatus.SETTLED
        advance.settled_against_payroll_month = payroll_month
        advance.settled_at = to_utc_naive(now) if now else utc_now()
        advance.settlement_amount = advance.approved_amount

        self.audit_service.log_action(
            action='settle_advance',
            entity_type='advance_payment',
            entity_id=advance.id,
            old_values=old_values,
            new_values=advance.to_dict(),
            changed_by=admin_id
        )

        logger.info(f"Advance settled: ID {advance_id} against payroll {payroll_month}, "
                    f"amount ₹{advance.settlement_amount}")
        return advance

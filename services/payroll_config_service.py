"""
Payroll Configuration Service

Versioned payroll configuration. Changing the configuration always appends a
new version; existing versions are never edited, so historical payroll
breakdowns keep the snapshot they were calculated with.
"""

from datetime import datetime
from typing import Optional, Dict, Any, List
import logging

from models import PayrollConfig
from timezone_utils import utc_now, to_utc_naive
from .transaction_helper import TransactionHelper
from .exceptions import PayrollConfigInvalid
from .stores import PayrollConfigSnapshot

logger = logging.getLogger(__name__)

DEFAULT_PAYROLL_CONFIG = {
    'monthly_salary': 27000.0,
    'overtime_rate': 100.0,
    'fuel_allowance': 33.30,
    'working_hours': 8.0
}

SIGNIFICANT_CHANGE_PERCENT = 20
MAX_NOTES_LENGTH = 500


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_config_values(monthly_salary, overtime_rate, fuel_allowance,
                           working_hours=None, notes: Optional[str] = None) -> List[str]:
    errors = []

    if not _is_number(monthly_salary) or not 1000 <= monthly_salary <= 500000:
        errors.append('Monthly salary must be between ₹1,000 and ₹5,00,000')

    if not _is_number(overtime_rate) or not 10 <= overtime_rate <= 1000:
        errors.append('Overtime rate must be between ₹10 and ₹1,000 per hour')

    if not _is_number(fuel_allowance) or not 1 <= fuel_allowance <= 500:
        errors.append('Fuel allowance must be between ₹1 and ₹500 per day')

    if working_hours is not None and (not _is_number(working_hours) or not 1 <= working_hours <= 24):
        errors.append('Working hours must be between 1 and 24 hours per day')

    if notes and len(notes) > MAX_NOTES_LENGTH:
        errors.append(f"Notes cannot exceed {MAX_NOTES_LENGTH} characters")

    return errors


class PayrollConfigService:
    """Service class for payroll configuration versions"""

    def __init__(self, session, config_store, audit_service=None):
        self.session = session
        self.config_store = config_store
        self.audit_service = audit_service

    def get_current_config(self, now: Optional[datetime] = None) -> Optional[PayrollConfigSnapshot]:
        return self.config_store.get_current(to_utc_naive(now))

    @TransactionHelper.with_transaction
    def save_config(self, monthly_salary: float, overtime_rate: float, fuel_allowance: float,
                    working_hours: float = 8.0, changed_by: Optional[str] = None,
                    notes: Optional[str] = None,
                    effective_from: Optional[datetime] = None) -> PayrollConfigSnapshot:
        """
        Append a new payroll configuration version.

        Args:
            monthly_salary: Monthly base salary (₹)
            overtime_rate: Overtime pay per hour (₹)
            fuel_allowance: Fuel allowance per working day (₹)
            working_hours: Standard working hours per day
            changed_by: Who made the change
            notes: Reason for the change
            effective_from: When the version takes effect, defaults to now

        Returns:
            PayrollConfigSnapshot: the saved version

        Raises:
            PayrollConfigInvalid
        """
        errors = validate_config_values(monthly_salary, overtime_rate, fuel_allowance, working_hours, notes)
        if errors:
            logger.warning(f"Payroll config rejected: {errors}")
            raise PayrollConfigInvalid(errors)

        previous = self.config_store.get_current()

        config = PayrollConfig()
        config.monthly_salary = float(monthly_salary)
        config.overtime_rate = float(overtime_rate)
        config.fuel_allowance = float(fuel_allowance)
        config.working_hours = float(working_hours)
        config.effective_from = to_utc_naive(effective_from) if effective_from else utc_now()
        config.changed_by = changed_by or 'system'
        config.notes = notes

        snapshot = self.config_store.add(config)

        if self.audit_service:
            self.audit_service.log_action(
                action='update_payroll_config',
                entity_type='payroll_config',
                entity_id=snapshot.id,
                old_values=previous.to_dict() if previous else None,
                new_values=snapshot.to_dict(),
                notes=notes
            )

        logger.info(f"Payroll config saved: ID {snapshot.id}, salary ₹{snapshot.monthly_salary}, "
                    f"overtime ₹{snapshot.overtime_rate}/h, fuel ₹{snapshot.fuel_allowance}/day by {config.changed_by}")
        return snapshot

    def get_config_history(self, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        history = self.config_store.get_history(limit, offset)
        total = self.config_store.count()
        return {
            'history': [config.to_dict() for config in history],
            'pagination': {
                'total': total,
                'limit': limit,
                'offset': offset,
                'has_more': offset + len(history) < total
            }
        }

    def calculate_config_impact(self, new_values: Dict[str, float]) -> Dict[str, Any]:
        """
        Compare proposed values with the current configuration.

        Args:
            new_values: monthly_salary, overtime_rate and fuel_allowance

        Returns:
            dict: change, change_percent and significant flag per field
        """
        current = self.config_store.get_current()
        if not current:
            return {'impact': 'No previous configuration to compare'}

        impact = {}
        for key, field in (('salary', 'monthly_salary'), ('overtime', 'overtime_rate'), ('fuel', 'fuel_allowance')):
            old_value = getattr(current, field)
            new_value = new_values.get(field, old_value)
            change = new_value - old_value
            change_percent = (change / old_value) * 100
            impact[key] = {
                'change': round(change, 2),
                'change_percent': round(change_percent, 2),
                'significant': abs(change_percent) > SIGNIFICANT_CHANGE_PERCENT
            }

        impact['overall_significant'] = impact['salary']['significant'] or impact['overtime']['significant']
        return impact

    @TransactionHelper.with_transaction
    def ensure_default_config(self) -> PayrollConfigSnapshot:
        """Seed the default configuration when no version is in effect yet"""
        current = self.config_store.get_current()
        if current:
            return current

        config = PayrollConfig(changed_by='system', notes='Default configuration', effective_from=utc_now(),
                               **DEFAULT_PAYROLL_CONFIG)
        snapshot = self.config_store.add(config)
        logger.info(f"Default payroll config created: ID {snapshot.id}")
        return snapshot

"""
Payroll Service

Monthly payroll for one driver or for every active driver:
prorated base salary, overtime pay, fuel allowance and unpaid-leave deduction,
computed from completed shifts, approved leave and the current payroll
configuration snapshot.
"""

import calendar
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, Any
import logging

from timezone_utils import get_business_timezone, business_month_bounds, utc_now, to_utc_naive, to_business_time
from .exceptions import PayrollError, InvalidPeriod, ConfigurationMissing, DriverNotFound
from .stores import PayrollConfigSnapshot
from .working_time import DEFAULT_WINDOW, StandardWindow, aggregate_working_time

logger = logging.getLogger(__name__)

MIN_PAYROLL_YEAR = 2020


def validate_payroll_period(year, month, now: Optional[datetime] = None):
    """Year within [2020, current year + 1], month within [1, 12]"""
    current_year = to_business_time(to_utc_naive(now) if now else utc_now()).year

    if isinstance(year, bool) or not isinstance(year, int) or not MIN_PAYROLL_YEAR <= year <= current_year + 1:
        raise InvalidPeriod(
            f"Invalid year. Must be between {MIN_PAYROLL_YEAR} and {current_year + 1}",
            {'year': year, 'min_year': MIN_PAYROLL_YEAR, 'max_year': current_year + 1}
        )
    if isinstance(month, bool) or not isinstance(month, int) or not 1 <= month <= 12:
        raise InvalidPeriod('Invalid month. Must be between 1 and 12', {'month': month})


def payroll_month_key(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


@dataclass(frozen=True)
class PayrollBreakdown:
    driver_id: int
    driver_name: Optional[str]
    year: int
    month: int
    days_in_month: int
    working_days: int
    total_hours: float
    regular_hours: float
    overtime_hours: float
    base_salary: float
    overtime_pay: float
    fuel_allowance: float
    paid_leaves: int
    unpaid_leaves: int
    leave_deduction: float
    total_earnings: float
    advance_deduction: float
    net_payable: float
    config: PayrollConfigSnapshot
    calculated_at: datetime
    error: Optional[str] = None

    @classmethod
    def failed(cls, driver, year: int, month: int, config: PayrollConfigSnapshot,
               error: str, calculated_at: datetime) -> 'PayrollBreakdown':
        """Zero-earnings row recorded when one driver's calculation fails in a batch"""
        return cls(
            driver_id=driver.id, driver_name=driver.full_name, year=year, month=month,
            days_in_month=calendar.monthrange(year, month)[1],
            working_days=0, total_hours=0.0, regular_hours=0.0, overtime_hours=0.0,
            base_salary=0.0, overtime_pay=0.0, fuel_allowance=0.0,
            paid_leaves=0, unpaid_leaves=0, leave_deduction=0.0, total_earnings=0.0,
            advance_deduction=0.0, net_payable=0.0,
            config=config, calculated_at=calculated_at, error=error
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'driver_id': self.driver_id,
            'driver_name': self.driver_name,
            'period': {'year': self.year, 'month': self.month, 'days_in_month': self.days_in_month},
            'working_time': {
                'working_days': self.working_days,
                'total_hours': round(self.total_hours, 2),
                'regular_hours': round(self.regular_hours, 2),
                'overtime_hours': round(self.overtime_hours, 2)
            },
            'earnings': {
                'base_salary': round(self.base_salary, 2),
                'overtime_pay': round(self.overtime_pay, 2),
                'fuel_allowance': round(self.fuel_allowance, 2),
                'leave_deduction': round(self.leave_deduction, 2),
                'total_earnings': round(self.total_earnings, 2),
                'advance_deduction': round(self.advance_deduction, 2),
                'net_payable': round(self.net_payable, 2)
            },
            'leaves': {'paid_leaves': self.paid_leaves, 'unpaid_leaves': self.unpaid_leaves},
            'config': self.config.to_dict(),
            'calculated_at': self.calculated_at.isoformat()
        }
        if self.error:
            data['error'] = self.error
        return data


class PayrollService:
    """Service class for monthly payroll calculations"""

    def __init__(self, driver_store, shift_store, config_store, leave_store, advance_store,
                 window: StandardWindow = DEFAULT_WINDOW, tz=None):
        self.driver_store = driver_store
        self.shift_store = shift_store
        self.config_store = config_store
        self.leave_store = leave_store
        self.advance_store = advance_store
        self.window = window
        self.tz = tz or get_business_timezone()

    def _get_current_config(self, now: Optional[datetime] = None) -> PayrollConfigSnapshot:
        config = self.config_store.get_current(to_utc_naive(now))
        if not config:
            logger.error('Payroll calculation attempted without a payroll configuration')
            raise ConfigurationMissing()
        return config

    def calculate_driver_payroll(self, driver_id: int, year: int, month: int,
                                 now: Optional[datetime] = None) -> PayrollBreakdown:
        """
        Calculate one driver's payroll for a calendar month.

        Args:
            driver_id: ID of driver
            year: Payroll year
            month: Payroll month (1-12)
            now: Reference instant for period validation and config selection

        Returns:
            PayrollBreakdown

        Raises:
            InvalidPeriod, ConfigurationMissing, DriverNotFound
        """
        validate_payroll_period(year, month, now)
        config = self._get_current_config(now)
        return self._calculate(driver_id, year, month, config, now)

    def _calculate(self, driver_id: int, year: int, month: int, config: PayrollConfigSnapshot,
                   now: Optional[datetime] = None) -> PayrollBreakdown:
        driver = self.driver_store.get(driver_id)
        if not driver:
            raise DriverNotFound(driver_id)

        month_start, month_end = business_month_bounds(year, month, self.tz)
        shifts = self.shift_store.get_completed_shifts(driver_id, month_start, month_end)
        leave_usage = self.leave_store.get_leave_usage(driver_id, year, month)
        working_time = aggregate_working_time(shifts, window=self.window, tz=self.tz)

        days_in_month = calendar.monthrange(year, month)[1]
        daily_salary = config.monthly_salary / days_in_month

        base_salary = config.monthly_salary * (working_time.working_days / days_in_month)
        overtime_pay = working_time.overtime_hours * config.overtime_rate
        fuel_allowance = working_time.working_days * config.fuel_allowance
        leave_deduction = leave_usage.unpaid_leaves * daily_salary
        total_earnings = base_salary + overtime_pay + fuel_allowance - leave_deduction

        advance_deduction = self.advance_store.get_settled_total(driver_id, payroll_month_key(year, month))

        logger.debug(f"Payroll for driver {driver_id} {year}-{month:02d}: {working_time.working_days} days, "
                     f"{working_time.overtime_hours:.2f} OT hours, total {total_earnings:.2f}")

        return PayrollBreakdown(
            driver_id=driver.id,
            driver_name=driver.full_name,
            year=year,
            month=month,
            days_in_month=days_in_month,
            working_days=working_time.working_days,
            total_hours=working_time.total_hours,
            regular_hours=working_time.regular_hours,
            overtime_hours=working_time.overtime_hours,
            base_salary=base_salary,
            overtime_pay=overtime_pay,
            fuel_allowance=fuel_allowance,
            paid_leaves=leave_usage.paid_leaves,
            unpaid_leaves=leave_usage.unpaid_leaves,
            leave_deduction=leave_deduction,
            total_earnings=total_earnings,
            advance_deduction=advance_deduction,
            net_payable=total_earnings - advance_deduction,
            config=config,
            calculated_at=to_utc_naive(now) if now else utc_now()
        )

    def calculate_all_drivers_payroll(self, year: int, month: int,
                                      now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Calculate payroll for every active driver.

        A failure for one driver is recorded as a zero-earnings row carrying the
        error; period, configuration and storage failures abort the batch.

        Returns:
            dict: period, drivers (list of breakdown dicts), summary, calculated_at
        """
        validate_payroll_period(year, month, now)
        config = self._get_current_config(now)
        calculated_at = to_utc_naive(now) if now else utc_now()

        drivers = self.driver_store.list_active()
        logger.info(f"Calculating payroll for {len(drivers)} active drivers, period {year}-{month:02d}")

        rows = []
        for driver in drivers:
            try:
                rows.append(self._calculate(driver.id, year, month, config, now))
            except PayrollError as e:
                logger.error(f"Error calculating payroll for driver {driver.id}: {e.message}")
                rows.append(PayrollBreakdown.failed(driver, year, month, config, e.message, calculated_at))

        return {
            'period': {'year': year, 'month': month},
            'drivers': [row.to_dict() for row in rows],
            'summary': self._summarize(rows),
            'config': config.to_dict(),
            'calculated_at': calculated_at.isoformat()
        }

    @staticmethod
    def _summarize(rows) -> Dict[str, Any]:
        total_payroll = sum(row.total_earnings for row in rows)
        return {
            'total_drivers': len(rows),
            'total_payroll': round(total_payroll, 2),
            'average_earnings': round(total_payroll / len(rows), 2) if rows else 0.0,
            'total_working_days': sum(row.working_days for row in rows),
            'total_overtime_hours': round(sum(row.overtime_hours for row in rows), 2),
            'failed_drivers': sum(1 for row in rows if row.error)
        }

    def get_payroll_summary(self, year: int, month: int, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Aggregate block of the all-drivers payroll for a month"""
        result = self.calculate_all_drivers_payroll(year, month, now)
        return {
            'period': result['period'],
            'summary': result['summary'],
            'calculated_at': result['calculated_at']
        }

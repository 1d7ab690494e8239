"""
Unit tests for monthly payroll calculation
"""

import pytest
from datetime import date, datetime

from sqlalchemy.exc import SQLAlchemyError

from models import AdvanceStatus, LeaveType, LeaveStatus
from services.payroll_service import validate_payroll_period
from services.exceptions import InvalidPeriod, InvalidInput, ConfigurationMissing, DriverNotFound
from tests.unit.conftest import (DriverFactory, ShiftFactory, ActiveShiftFactory, PayrollConfigFactory,
                                 LeaveRecordFactory, AdvancePaymentFactory, ist)

APRIL_2025 = ist(2025, 4, 1, 9)


def work_days(year, month, days, start_hour=8, end_hour=16, *, driver):
    """Completed shifts on the given days of a month, IST wall-clock hours"""
    return [
        ShiftFactory(driver=driver, clock_in_time=ist(year, month, day, start_hour),
                     clock_out_time=ist(year, month, day, end_hour))
        for day in days
    ]


def non_sundays(year, month, last_day):
    return [d for d in range(1, last_day + 1) if date(year, month, d).weekday() != 6]


class TestPayrollScenarios:

    def test_scenario_e_reference_month(self, services, driver, payroll_config):
        """25 working days, 10 overtime hours, 31-day month"""
        days = non_sundays(2025, 3, 29)
        assert len(days) == 25
        work_days(2025, 3, days[:10], start_hour=7, driver=driver)
        work_days(2025, 3, days[10:], driver=driver)

        breakdown = services.payroll_service.calculate_driver_payroll(driver.id, 2025, 3, now=APRIL_2025)

        assert breakdown.days_in_month == 31
        assert breakdown.working_days == 25
        assert breakdown.overtime_hours == pytest.approx(10)
        assert breakdown.base_salary == pytest.approx(27000 * 25 / 31)
        assert breakdown.overtime_pay == pytest.approx(1000)
        assert breakdown.fuel_allowance == pytest.approx(832.50)
        assert breakdown.leave_deduction == 0

        earnings = breakdown.to_dict()['earnings']
        assert earnings['base_salary'] == 21774.19
        assert earnings['total_earnings'] == 23606.69

    def test_scenario_a_weekday_month_without_overtime(self, services, driver, payroll_config):
        """Mon-Sat 8:00-16:00 through February 2021"""
        days = non_sundays(2021, 2, 28)
        work_days(2021, 2, days, driver=driver)

        breakdown = services.payroll_service.calculate_driver_payroll(driver.id, 2021, 2, now=APRIL_2025)

        assert breakdown.working_days == 24
        assert breakdown.overtime_hours == 0
        assert breakdown.regular_hours == pytest.approx(24 * 8)
        assert breakdown.base_salary == pytest.approx(27000 * 24 / 28)

    def test_sunday_shift_is_overtime(self, services, driver, payroll_config):
        work_days(2025, 3, [2], start_hour=9, end_hour=15, driver=driver)

        breakdown = services.payroll_service.calculate_driver_payroll(driver.id, 2025, 3, now=APRIL_2025)

        assert breakdown.overtime_hours == pytest.approx(6)
        assert breakdown.regular_hours == 0
        assert breakdown.overtime_pay == pytest.approx(600)


class TestPayrollInvariants:

    def test_conservation(self, services, driver, payroll_config):
        work_days(2025, 2, [3, 4, 5, 9], start_hour=6, end_hour=22, driver=driver)
        LeaveRecordFactory(driver=driver, leave_date=date(2025, 2, 10), leave_type=LeaveType.EMERGENCY)

        b = services.payroll_service.calculate_driver_payroll(driver.id, 2025, 2, now=APRIL_2025)

        assert b.total_earnings == b.base_salary + b.overtime_pay + b.fuel_allowance - b.leave_deduction

    def test_proration_bound(self, services, driver, payroll_config):
        work_days(2025, 2, range(1, 29), driver=driver)

        b = services.payroll_service.calculate_driver_payroll(driver.id, 2025, 2, now=APRIL_2025)

        assert 0 <= b.base_salary <= payroll_config.monthly_salary
        assert b.base_salary == pytest.approx(payroll_config.monthly_salary)

    def test_no_shifts_means_zero_earnings(self, services, driver, payroll_config):
        b = services.payroll_service.calculate_driver_payroll(driver.id, 2025, 3, now=APRIL_2025)

        assert b.working_days == 0
        assert b.base_salary == 0
        assert b.total_earnings == 0


class TestShiftSelection:

    def test_month_boundaries_follow_business_timezone(self, services, driver, payroll_config):
        # 1 March 01:00 IST is still February in UTC; 1 April 02:00 IST is still March in UTC
        ShiftFactory(driver=driver, clock_in_time=ist(2025, 3, 1, 1), clock_out_time=ist(2025, 3, 1, 5))
        ShiftFactory(driver=driver, clock_in_time=ist(2025, 4, 1, 2), clock_out_time=ist(2025, 4, 1, 6))

        b = services.payroll_service.calculate_driver_payroll(driver.id, 2025, 3, now=APRIL_2025)

        assert b.working_days == 1

    def test_active_and_other_driver_shifts_excluded(self, services, driver, payroll_config):
        work_days(2025, 3, [3], driver=driver)
        ActiveShiftFactory(driver=driver, clock_in_time=ist(2025, 3, 4, 8))
        work_days(2025, 3, [3, 4], driver=DriverFactory())

        b = services.payroll_service.calculate_driver_payroll(driver.id, 2025, 3, now=APRIL_2025)

        assert b.working_days == 1


class TestLeaveDeduction:

    def test_unpaid_leave_deducted_at_daily_rate(self, services, driver, payroll_config):
        for day in range(1, 13):
            LeaveRecordFactory(driver=driver, leave_date=date(2025, 1, day))
        LeaveRecordFactory(driver=driver, leave_date=date(2025, 2, 3))  # 13th annual day
        LeaveRecordFactory(driver=driver, leave_date=date(2025, 2, 4), leave_type=LeaveType.EMERGENCY)
        LeaveRecordFactory(driver=driver, leave_date=date(2025, 2, 5), leave_type=LeaveType.SICK)
        LeaveRecordFactory(driver=driver, leave_date=date(2025, 2, 6), status=LeaveStatus.PENDING)
        work_days(2025, 2, [10, 11], driver=driver)

        b = services.payroll_service.calculate_driver_payroll(driver.id, 2025, 2, now=APRIL_2025)

        assert b.paid_leaves == 1
        assert b.unpaid_leaves == 2
        assert b.leave_deduction == pytest.approx(2 * 27000 / 28)

    def test_annual_leave_within_entitlement_is_paid(self, services, driver, payroll_config):
        LeaveRecordFactory(driver=driver, leave_date=date(2025, 3, 5))

        b = services.payroll_service.calculate_driver_payroll(driver.id, 2025, 3, now=APRIL_2025)

        assert b.paid_leaves == 1
        assert b.leave_deduction == 0


class TestAdvanceDeduction:

    def test_settled_advances_reported_outside_total(self, services, driver, payroll_config):
        work_days(2025, 3, [3, 4], driver=driver)
        AdvancePaymentFactory(driver=driver, status=AdvanceStatus.SETTLED, approved_amount=1500.0,
                              settlement_amount=1500.0, settled_against_payroll_month='2025-03',
                              settled_at=datetime(2025, 3, 31))
        AdvancePaymentFactory(driver=driver, status=AdvanceStatus.SETTLED, approved_amount=700.0,
                              settlement_amount=700.0, settled_against_payroll_month='2025-02',
                              settled_at=datetime(2025, 2, 28))

        b = services.payroll_service.calculate_driver_payroll(driver.id, 2025, 3, now=APRIL_2025)

        assert b.advance_deduction == pytest.approx(1500)
        assert b.net_payable == pytest.approx(b.total_earnings - 1500)
        assert b.total_earnings == pytest.approx(b.base_salary + b.overtime_pay + b.fuel_allowance)


class TestPayrollErrors:

    @pytest.mark.parametrize('year,month', [(2019, 5), (2027, 1), (2025, 0), (2025, 13), ('2025', 3)])
    def test_invalid_period(self, year, month):
        with pytest.raises(InvalidPeriod):
            validate_payroll_period(year, month, now=APRIL_2025)

    def test_next_year_allowed(self):
        validate_payroll_period(2026, 12, now=APRIL_2025)

    def test_missing_configuration(self, services, driver):
        with pytest.raises(ConfigurationMissing):
            services.payroll_service.calculate_driver_payroll(driver.id, 2025, 3, now=APRIL_2025)

    def test_period_checked_before_configuration(self, services, driver):
        with pytest.raises(InvalidPeriod):
            services.payroll_service.calculate_driver_payroll(driver.id, 2025, 13, now=APRIL_2025)

    def test_unknown_driver(self, services, payroll_config):
        with pytest.raises(DriverNotFound):
            services.payroll_service.calculate_driver_payroll(9999, 2025, 3, now=APRIL_2025)


class TestConfigurationSnapshot:

    def test_breakdown_keeps_config_used(self, services, driver, payroll_config):
        before = services.payroll_service.calculate_driver_payroll(driver.id, 2025, 3, now=APRIL_2025)

        PayrollConfigFactory(monthly_salary=30000.0, effective_from=datetime(2025, 4, 1))
        after = services.payroll_service.calculate_driver_payroll(driver.id, 2025, 3, now=APRIL_2025)

        assert before.config.monthly_salary == 27000
        assert after.config.monthly_salary == 30000
        assert before.to_dict()['config']['id'] == payroll_config.id

    def test_future_config_not_applied(self, services, driver, payroll_config):
        work_days(2025, 3, [3], driver=driver)
        PayrollConfigFactory(monthly_salary=90000.0, effective_from=datetime(2025, 5, 1))

        breakdown = services.payroll_service.calculate_driver_payroll(driver.id, 2025, 3, now=APRIL_2025)

        assert breakdown.config.id == payroll_config.id
        assert breakdown.base_salary == pytest.approx(27000 / 31)

    def test_only_future_config_is_missing(self, services, driver):
        PayrollConfigFactory(effective_from=datetime(2025, 5, 1))

        with pytest.raises(ConfigurationMissing):
            services.payroll_service.calculate_driver_payroll(driver.id, 2025, 3, now=APRIL_2025)


class TestAllDriversPayroll:

    def test_batch_covers_active_drivers(self, services, payroll_config):
        first = DriverFactory()
        second = DriverFactory()
        DriverFactory(is_active=False)
        work_days(2025, 3, [3, 4], driver=first)
        work_days(2025, 3, [3], start_hour=7, driver=second)

        result = services.payroll_service.calculate_all_drivers_payroll(2025, 3, now=APRIL_2025)

        assert [row['driver_id'] for row in result['drivers']] == [first.id, second.id]
        summary = result['summary']
        assert summary['total_drivers'] == 2
        assert summary['total_working_days'] == 3
        assert summary['total_overtime_hours'] == 1
        assert summary['failed_drivers'] == 0
        expected_total = sum(row['earnings']['total_earnings'] for row in result['drivers'])
        assert summary['total_payroll'] == pytest.approx(expected_total, abs=0.01)
        assert summary['average_earnings'] == pytest.approx(expected_total / 2, abs=0.01)

    def test_one_driver_failure_does_not_abort_batch(self, services, payroll_config, monkeypatch):
        good = DriverFactory()
        bad = DriverFactory()
        work_days(2025, 3, [3], driver=good)

        store = services.payroll_service.shift_store
        original = store.get_completed_shifts

        def flaky(driver_id, start, end):
            if driver_id == bad.id:
                raise InvalidInput('Corrupt shift data')
            return original(driver_id, start, end)

        monkeypatch.setattr(store, 'get_completed_shifts', flaky)

        result = services.payroll_service.calculate_all_drivers_payroll(2025, 3, now=APRIL_2025)

        rows = {row['driver_id']: row for row in result['drivers']}
        assert rows[good.id]['working_time']['working_days'] == 1
        assert rows[bad.id]['error'] == 'Corrupt shift data'
        assert rows[bad.id]['earnings']['total_earnings'] == 0
        assert result['summary']['failed_drivers'] == 1

    def test_storage_failure_fails_batch(self, services, payroll_config, monkeypatch):
        DriverFactory()

        def broken(*args):
            raise SQLAlchemyError('database unavailable')

        monkeypatch.setattr(services.payroll_service.shift_store, 'get_completed_shifts', broken)

        with pytest.raises(SQLAlchemyError):
            services.payroll_service.calculate_all_drivers_payroll(2025, 3, now=APRIL_2025)

    def test_missing_configuration_fails_batch(self, services):
        DriverFactory()

        with pytest.raises(ConfigurationMissing):
            services.payroll_service.calculate_all_drivers_payroll(2025, 3, now=APRIL_2025)

    def test_summary_only(self, services, payroll_config):
        work_days(2025, 3, [3], driver=DriverFactory())

        summary = services.payroll_service.get_payroll_summary(2025, 3, now=APRIL_2025)

        assert summary['period'] == {'year': 2025, 'month': 3}
        assert summary['summary']['total_drivers'] == 1
        assert 'drivers' not in summary

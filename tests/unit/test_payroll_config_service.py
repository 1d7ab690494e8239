"""
Unit tests for payroll configuration versions
"""

import pytest
from datetime import datetime

from models import PayrollConfig, AuditLog
from services.exceptions import PayrollConfigInvalid
from services.payroll_config_service import validate_config_values, DEFAULT_PAYROLL_CONFIG
from tests.unit.conftest import PayrollConfigFactory


class TestSaveConfig:

    def test_save_appends_new_version(self, services, payroll_config, db_session):
        saved = services.config_service.save_config(30000, 120, 40, changed_by='ops', notes='Annual revision',
                                                    effective_from=datetime(2025, 4, 1))

        assert db_session.query(PayrollConfig).count() == 2
        assert services.config_service.get_current_config() == saved
        assert saved.monthly_salary == 30000
        assert saved.changed_by == 'ops'

        db_session.refresh(payroll_config)
        assert payroll_config.monthly_salary == 27000

    def test_save_records_audit(self, services, payroll_config, db_session):
        saved = services.config_service.save_config(28000, 100, 33.30)

        audit = db_session.query(AuditLog).filter_by(entity_type='payroll_config', entity_id=saved.id).one()
        assert audit.old_values_dict['monthly_salary'] == 27000
        assert audit.new_values_dict['monthly_salary'] == 28000

    def test_invalid_values_rejected(self, services, db_session):
        with pytest.raises(PayrollConfigInvalid) as exc_info:
            services.config_service.save_config(500, 5, 600, working_hours=30, notes='x' * 501)

        assert len(exc_info.value.errors) == 5
        assert db_session.query(PayrollConfig).count() == 0

    @pytest.mark.parametrize('salary,overtime,fuel,hours', [
        (1000, 10, 1, 1),
        (500000, 1000, 500, 24),
    ])
    def test_range_bounds_are_inclusive(self, salary, overtime, fuel, hours):
        assert validate_config_values(salary, overtime, fuel, hours) == []

    def test_non_numeric_rejected(self):
        errors = validate_config_values('27000', 100, True)

        assert len(errors) == 2


class TestCurrentConfig:

    def test_latest_effective_version_is_current(self, services):
        PayrollConfigFactory(monthly_salary=25000.0, effective_from=datetime(2024, 6, 1))
        PayrollConfigFactory(monthly_salary=26000.0, effective_from=datetime(2024, 1, 1))

        assert services.config_service.get_current_config().monthly_salary == 25000

    def test_future_version_not_current_until_effective(self, services, payroll_config):
        future = services.config_service.save_config(90000, 100, 33.30, effective_from=datetime(2099, 1, 1))

        assert services.config_service.get_current_config().id == payroll_config.id
        assert services.config_service.get_current_config(now=datetime(2099, 1, 2)).id == future.id
        assert services.config_service.get_config_history()['pagination']['total'] == 2

    def test_future_version_does_not_block_default_seed(self, services):
        PayrollConfigFactory(monthly_salary=90000.0, effective_from=datetime(2099, 1, 1))

        seeded = services.config_service.ensure_default_config()

        assert seeded.monthly_salary == DEFAULT_PAYROLL_CONFIG['monthly_salary']
        assert services.config_service.get_current_config() == seeded

    def test_no_config(self, services):
        assert services.config_service.get_current_config() is None

    def test_history_paginates_newest_first(self, services):
        for month in range(1, 6):
            PayrollConfigFactory(monthly_salary=20000.0 + month, effective_from=datetime(2024, month, 1))

        page = services.config_service.get_config_history(limit=2, offset=1)

        assert [c['monthly_salary'] for c in page['history']] == [20004, 20003]
        assert page['pagination'] == {'total': 5, 'limit': 2, 'offset': 1, 'has_more': True}


class TestConfigImpact:

    def test_significant_changes_flagged(self, services, payroll_config):
        impact = services.config_service.calculate_config_impact(
            {'monthly_salary': 33000, 'overtime_rate': 110, 'fuel_allowance': 33.30}
        )

        assert impact['salary']['change'] == 6000
        assert impact['salary']['change_percent'] == pytest.approx(22.22)
        assert impact['salary']['significant'] is True
        assert impact['overtime']['significant'] is False
        assert impact['fuel']['change'] == 0
        assert impact['overall_significant'] is True

    def test_no_previous_config(self, services):
        impact = services.config_service.calculate_config_impact({'monthly_salary': 30000})

        assert impact == {'impact': 'No previous configuration to compare'}


class TestDefaultConfig:

    def test_seeds_defaults_once(self, services, db_session):
        first = services.config_service.ensure_default_config()
        second = services.config_service.ensure_default_config()

        assert first == second
        assert first.monthly_salary == DEFAULT_PAYROLL_CONFIG['monthly_salary']
        assert first.fuel_allowance == pytest.approx(33.30)
        assert db_session.query(PayrollConfig).count() == 1

    def test_existing_config_kept(self, services, payroll_config):
        PayrollConfigFactory(monthly_salary=40000.0, effective_from=datetime(2024, 2, 1))

        assert services.config_service.ensure_default_config().monthly_salary == 40000

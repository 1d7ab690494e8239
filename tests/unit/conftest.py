"""
Unit test configuration and fixtures for the payroll engine
"""

import pytest
import os
from datetime import datetime, date, timedelta

import pytz

# Set test environment before importing app
os.environ.update({
    'FLASK_ENV': 'testing',
    'TESTING': 'true',
    'DATABASE_URL': 'sqlite:///:memory:',
    'BUSINESS_TIMEZONE': 'Asia/Kolkata',
    'SEED_DEFAULT_CONFIG': 'false'
})

from app import create_app, db
from models import (Driver, Shift, ShiftStatus, PayrollConfig, LeaveRecord, LeaveType, LeaveStatus,
                    AdvancePayment, AdvanceStatus, AdvanceConfig)
from services import build_services
from timezone_utils import to_utc_naive
import factory
from factory import Faker

IST = pytz.timezone('Asia/Kolkata')


def ist(year, month, day, hour=0, minute=0):
    """Naive UTC instant for an IST wall-clock time"""
    return to_utc_naive(IST.localize(datetime(year, month, day, hour, minute)))


@pytest.fixture(scope='function')
def app():
    """Create application for testing"""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:'
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create database session for testing"""
    yield db.session
    db.session.rollback()


@pytest.fixture(scope='function')
def services(app, db_session):
    """All services wired to the test session"""
    return build_services(db_session, app.config)


# Factory classes for test data generation
class DriverFactory(factory.alchemy.SQLAlchemyModelFactory):
    class Meta:
        model = Driver
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = "commit"

    full_name = Faker('name')
    phone = factory.Sequence(lambda n: f"98{n:08d}")
    email = factory.Sequence(lambda n: f"driver{n}@test.com")
    is_active = True


class ShiftFactory(factory.alchemy.SQLAlchemyModelFactory):
    """Completed 8:00-16:00 IST shift unless overridden"""
    class Meta:
        model = Shift
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = "commit"

    driver = factory.SubFactory(DriverFactory)
    clock_in_time = factory.LazyFunction(lambda: ist(2025, 3, 3, 8))
    clock_out_time = factory.LazyAttribute(lambda o: o.clock_in_time + timedelta(hours=8))
    start_odometer = factory.Sequence(lambda n: 10000 + n * 100)
    end_odometer = factory.LazyAttribute(lambda o: o.start_odometer + 50)
    total_distance = factory.LazyAttribute(lambda o: o.end_odometer - o.start_odometer)
    duration_minutes = factory.LazyAttribute(
        lambda o: round((o.clock_out_time - o.clock_in_time).total_seconds() / 60)
    )
    status = ShiftStatus.COMPLETED


class ActiveShiftFactory(ShiftFactory):
    clock_out_time = None
    end_odometer = None
    total_distance = None
    duration_minutes = None
    status = ShiftStatus.ACTIVE


class PayrollConfigFactory(factory.alchemy.SQLAlchemyModelFactory):
    class Meta:
        model = PayrollConfig
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = "commit"

    monthly_salary = 27000.0
    overtime_rate = 100.0
    fuel_allowance = 33.30
    working_hours = 8.0
    effective_from = factory.LazyFunction(lambda: datetime(2024, 1, 1))
    changed_by = 'admin'


class LeaveRecordFactory(factory.alchemy.SQLAlchemyModelFactory):
    class Meta:
        model = LeaveRecord
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = "commit"

    driver = factory.SubFactory(DriverFactory)
    leave_date = factory.Sequence(lambda n: date(2025, 1, 1) + timedelta(days=n))
    leave_type = LeaveType.ANNUAL
    status = LeaveStatus.APPROVED
    reason = Faker('sentence')


class AdvancePaymentFactory(factory.alchemy.SQLAlchemyModelFactory):
    class Meta:
        model = AdvancePayment
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = "commit"

    driver = factory.SubFactory(DriverFactory)
    request_date = factory.LazyFunction(lambda: date(2025, 1, 15))
    requested_amount = 2000.0
    approved_amount = 2000.0
    reason = Faker('sentence')
    status = AdvanceStatus.APPROVED


class AdvanceConfigFactory(factory.alchemy.SQLAlchemyModelFactory):
    class Meta:
        model = AdvanceConfig
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = "commit"

    max_advance_percentage = 60.0
    max_requests_per_month = 3
    min_advance_amount = 500.0
    max_advance_amount = 20000.0


# Fixtures for test data
@pytest.fixture
def driver(db_session):
    """Create active test driver"""
    return DriverFactory()


@pytest.fixture
def payroll_config(db_session):
    """Current payroll configuration: ₹27,000 / ₹100 per OT hour / ₹33.30 fuel per day"""
    return PayrollConfigFactory()

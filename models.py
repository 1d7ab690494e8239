
import json
from app import db
from sqlalchemy import Index, CheckConstraint, UniqueConstraint, text
from sqlalchemy.ext.hybrid import hybrid_property
from enum import Enum
from timezone_utils import utc_now

# Enums for better data integrity
class ShiftStatus(Enum):
    ACTIVE = 'active'
    COMPLETED = 'completed'

class LeaveType(Enum):
    ANNUAL = 'annual'
    SICK = 'sick'
    EMERGENCY = 'emergency'

class LeaveStatus(Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    CANCELLED = 'cancelled'

class AdvanceStatus(Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    PAID = 'paid'
    SETTLED = 'settled'

# Statuses whose approved amount still counts against the advance limit
OUTSTANDING_ADVANCE_STATUSES = (AdvanceStatus.APPROVED, AdvanceStatus.PAID)


class Driver(db.Model):
    __tablename__ = 'drivers'

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(100), nullable=False, index=True)
    phone = db.Column(db.String(20), unique=True, index=True)
    email = db.Column(db.String(120))
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    # Relationships
    shifts = db.relationship('Shift', backref='driver', lazy='dynamic')
    leave_records = db.relationship('LeaveRecord', backref='driver', lazy='dynamic')
    advance_payments = db.relationship('AdvancePayment', backref='driver', lazy='dynamic')

    def __repr__(self):
        return f'<Driver {self.full_name}>'


class Shift(db.Model):
    __tablename__ = 'shifts'

    id = db.Column(db.Integer, primary_key=True)
    driver_id = db.Column(db.Integer, db.ForeignKey('drivers.id'), nullable=False, index=True)

    # Instants are stored as naive UTC
    clock_in_time = db.Column(db.DateTime, nullable=False, index=True)
    clock_out_time = db.Column(db.DateTime)

    start_odometer = db.Column(db.Integer, nullable=False)
    end_odometer = db.Column(db.Integer)
    total_distance = db.Column(db.Integer)
    duration_minutes = db.Column(db.Integer)

    status = db.Column(db.Enum(ShiftStatus), nullable=False, default=ShiftStatus.ACTIVE, index=True)
    notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        # Storage-enforced "one open shift per driver"; closes the clock-in race
        Index('uq_shifts_one_active_per_driver', 'driver_id', unique=True,
              sqlite_where=text("status = 'ACTIVE'"),
              postgresql_where=text("status = 'ACTIVE'")),
        Index('idx_shift_driver_clock_in', 'driver_id', 'clock_in_time'),
        CheckConstraint('start_odometer >= 0', name='ck_shift_start_odometer_non_negative'),
        CheckConstraint('end_odometer IS NULL OR end_odometer >= start_odometer',
                        name='ck_shift_end_odometer_not_below_start'),
    )

    @hybrid_property
    def is_active(self):
        return self.status == ShiftStatus.ACTIVE

    def to_dict(self):
        return {
            'id': self.id,
            'driver_id': self.driver_id,
            'clock_in_time': self.clock_in_time.isoformat() if self.clock_in_time else None,
            'clock_out_time': self.clock_out_time.isoformat() if self.clock_out_time else None,
            'start_odometer': self.start_odometer,
            'end_odometer': self.end_odometer,
            'total_distance': self.total_distance,
            'duration_minutes': self.duration_minutes,
            'status': self.status.value,
            'notes': self.notes
        }

    def __repr__(self):
        return f'<Shift {self.id} driver={self.driver_id} {self.status.value}>'


class PayrollConfig(db.Model):
    """Append-only payroll configuration versions; the latest effective row is current"""
    __tablename__ = 'payroll_config_history'

    id = db.Column(db.Integer, primary_key=True)
    monthly_salary = db.Column(db.Float, nullable=False)
    overtime_rate = db.Column(db.Float, nullable=False)
    fuel_allowance = db.Column(db.Float, nullable=False)
    working_hours = db.Column(db.Float, nullable=False, default=8.0)
    effective_from = db.Column(db.DateTime, nullable=False, default=utc_now, index=True)
    changed_by = db.Column(db.String(100))
    notes = db.Column(db.Text)

    __table_args__ = (
        CheckConstraint('monthly_salary > 0', name='ck_payroll_salary_positive'),
        CheckConstraint('overtime_rate > 0', name='ck_payroll_overtime_positive'),
        CheckConstraint('fuel_allowance > 0', name='ck_payroll_fuel_positive'),
        CheckConstraint('working_hours > 0 AND working_hours <= 24', name='ck_payroll_hours_range'),
    )

    def __repr__(self):
        return f'<PayrollConfig {self.id} ₹{self.monthly_salary}>'


class LeaveRecord(db.Model):
    __tablename__ = 'leave_requests'

    id = db.Column(db.Integer, primary_key=True)
    driver_id = db.Column(db.Integer, db.ForeignKey('drivers.id'), nullable=False, index=True)
    leave_date = db.Column(db.Date, nullable=False)
    leave_type = db.Column(db.Enum(LeaveType), nullable=False, default=LeaveType.ANNUAL)
    status = db.Column(db.Enum(LeaveStatus), nullable=False, default=LeaveStatus.PENDING, index=True)
    reason = db.Column(db.Text)

    requested_at = db.Column(db.DateTime, default=utc_now)
    approved_at = db.Column(db.DateTime)

    __table_args__ = (
        UniqueConstraint('driver_id', 'leave_date', name='uq_leave_driver_date'),
    )

    def __repr__(self):
        return f'<LeaveRecord {self.driver_id} {self.leave_date} {self.leave_type.value}>'


class AdvancePayment(db.Model):
    """Salary advance requested by a driver and settled against a payroll month"""
    __tablename__ = 'advance_payments'

    id = db.Column(db.Integer, primary_key=True)
    driver_id = db.Column(db.Integer, db.ForeignKey('drivers.id'), nullable=False, index=True)

    # Request details
    request_date = db.Column(db.Date, nullable=False, index=True)
    requested_amount = db.Column(db.Float, nullable=False)
    approved_amount = db.Column(db.Float, default=0.0)
    advance_type = db.Column(db.String(20), default='regular')
    reason = db.Column(db.Text, nullable=False)
    status = db.Column(db.Enum(AdvanceStatus), nullable=False, default=AdvanceStatus.PENDING, index=True)

    # Approval workflow
    approved_by = db.Column(db.Integer)
    approved_at = db.Column(db.DateTime)
    rejected_reason = db.Column(db.Text)

    # Payment tracking
    paid_at = db.Column(db.DateTime)
    payment_method = db.Column(db.String(30), default='bank_transfer')
    payment_reference = db.Column(db.String(100))

    # Settlement tracking
    settled_against_payroll_month = db.Column(db.String(7), index=True)  # YYYY-MM
    settled_at = db.Column(db.DateTime)
    settlement_amount = db.Column(db.Float, default=0.0)

    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    def to_dict(self):
        return {
            'id': self.id,
            'driver_id': self.driver_id,
            'request_date': self.request_date.isoformat() if self.request_date else None,
            'requested_amount': self.requested_amount,
            'approved_amount': self.approved_amount,
            'advance_type': self.advance_type,
            'reason': self.reason,
            'status': self.status.value,
            'approved_at': self.approved_at.isoformat() if self.approved_at else None,
            'paid_at': self.paid_at.isoformat() if self.paid_at else None,
            'settled_against_payroll_month': self.settled_against_payroll_month,
            'settled_at': self.settled_at.isoformat() if self.settled_at else None
        }

    def __repr__(self):
        return f'<AdvancePayment ₹{self.requested_amount} for Driver {self.driver_id}>'


class AdvanceConfig(db.Model):
    __tablename__ = 'advance_payment_config'

    id = db.Column(db.Integer, primary_key=True)
    max_advance_percentage = db.Column(db.Float, default=60.0)
    max_requests_per_month = db.Column(db.Integer, default=3)
    min_advance_amount = db.Column(db.Float, default=500.0)
    max_advance_amount = db.Column(db.Float, default=20000.0)

    created_by = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=utc_now)
    notes = db.Column(db.Text)


class AuditLog(db.Model):
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)

    # Action details
    action = db.Column(db.String(100), nullable=False, index=True)
    entity_type = db.Column(db.String(50), index=True)
    entity_id = db.Column(db.Integer)

    # Change tracking
    old_values = db.Column(db.Text)  # JSON
    new_values = db.Column(db.Text)  # JSON

    changed_by = db.Column(db.Integer)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utc_now, index=True)

    __table_args__ = (
        Index('idx_audit_entity', 'entity_type', 'entity_id'),
    )

    @property
    def new_values_dict(self):
        return json.loads(self.new_values) if self.new_values else None

    @property
    def old_values_dict(self):
        return json.loads(self.old_values) if self.old_values else None

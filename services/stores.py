"""
Storage collaborators for the payroll engine.

Each store wraps an injected SQLAlchemy session and exposes only the reads and
writes the services need. Stores never commit; the calling service owns the
transaction.
"""

from dataclasses import dataclass, asdict
from datetime import date, datetime
from typing import List, Optional
import logging

from sqlalchemy import func

from models import (Driver, Shift, ShiftStatus, PayrollConfig, LeaveRecord, LeaveType,
                    LeaveStatus, AdvancePayment, AdvanceConfig, OUTSTANDING_ADVANCE_STATUSES)
from timezone_utils import utc_now

logger = logging.getLogger(__name__)

ANNUAL_LEAVE_ENTITLEMENT = 12  # paid annual leave days per year

PAID_LEAVE_TYPES = (LeaveType.SICK,)


@dataclass(frozen=True)
class PayrollConfigSnapshot:
    """Immutable view of the payroll configuration version used for a calculation"""
    id: Optional[int]
    monthly_salary: float
    overtime_rate: float
    fuel_allowance: float
    working_hours: float
    effective_from: Optional[datetime] = None
    changed_by: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_model(cls, config: PayrollConfig) -> 'PayrollConfigSnapshot':
        return cls(
            id=config.id,
            monthly_salary=float(config.monthly_salary),
            overtime_rate=float(config.overtime_rate),
            fuel_allowance=float(config.fuel_allowance),
            working_hours=float(config.working_hours),
            effective_from=config.effective_from,
            changed_by=config.changed_by,
            notes=config.notes
        )

    def to_dict(self):
        data = asdict(self)
        data['effective_from'] = self.effective_from.isoformat() if self.effective_from else None
        return data


@dataclass(frozen=True)
class LeaveUsage:
    paid_leaves: int = 0
    unpaid_leaves: int = 0

    @property
    def total(self):
        return self.paid_leaves + self.unpaid_leaves


class DriverStore:

    def __init__(self, session):
        self.session = session

    def get(self, driver_id: int) -> Optional[Driver]:
        return self.session.get(Driver, driver_id)

    def list_active(self) -> List[Driver]:
        return self.session.query(Driver).filter(Driver.is_active.is_(True)) \
                                         .order_by(Driver.id).all()


class ShiftStore:

    def __init__(self, session):
        self.session = session

    def get(self, shift_id: int) -> Optional[Shift]:
        return self.session.get(Shift, shift_id)

    def add(self, shift: Shift) -> Shift:
        """Stage a shift and flush so storage constraints are checked immediately"""
        self.session.add(shift)
        self.session.flush()
        return shift

    def delete(self, shift: Shift):
        self.session.delete(shift)
        self.session.flush()

    def get_active_shift(self, driver_id: int) -> Optional[Shift]:
        return self.session.query(Shift).filter(
            Shift.driver_id == driver_id,
            Shift.status == ShiftStatus.ACTIVE
        ).first()

    def get_last_completed_shift(self, driver_id: int) -> Optional[Shift]:
        return self.session.query(Shift).filter(
            Shift.driver_id == driver_id,
            Shift.status == ShiftStatus.COMPLETED
        ).order_by(Shift.clock_out_time.desc(), Shift.id.desc()).first()

    def get_shifts_between(self, driver_id: int, start: datetime, end: datetime) -> List[Shift]:
        """Shifts of any status whose clock-in falls in [start, end)"""
        return self.session.query(Shift).filter(
            Shift.driver_id == driver_id,
            Shift.clock_in_time >= start,
            Shift.clock_in_time < end
        ).order_by(Shift.clock_in_time).all()

    def count_shifts_between(self, driver_id: int, start: datetime, end: datetime) -> int:
        return self.session.query(func.count(Shift.id)).filter(
            Shift.driver_id == driver_id,
            Shift.clock_in_time >= start,
            Shift.clock_in_time < end
        ).scalar() or 0

    def get_completed_shifts(self, driver_id: int, start: datetime, end: datetime) -> List[Shift]:
        """Completed shifts whose clock-in falls in [start, end)"""
        return self.session.query(Shift).filter(
            Shift.driver_id == driver_id,
            Shift.status == ShiftStatus.COMPLETED,
            Shift.clock_in_time >= start,
            Shift.clock_in_time < end
        ).order_by(Shift.clock_in_time).all()

    def has_completed_shift_since(self, driver_id: int, since: datetime) -> bool:
        return self.session.query(Shift.id).filter(
            Shift.driver_id == driver_id,
            Shift.status == ShiftStatus.COMPLETED,
            Shift.clock_in_time >= since
        ).first() is not None

    def get_driver_shifts(self, driver_id: int) -> List[Shift]:
        return self.session.query(Shift).filter(Shift.driver_id == driver_id) \
                                        .order_by(Shift.clock_in_time.desc()).all()


class PayrollConfigStore:

    def __init__(self, session):
        self.session = session

    def _versions_query(self):
        return self.session.query(PayrollConfig).order_by(
            PayrollConfig.effective_from.desc(), PayrollConfig.id.desc()
        )

    def get_current(self, now: Optional[datetime] = None) -> Optional[PayrollConfigSnapshot]:
        """Most recently effective version as of `now`; future-dated versions are skipped"""
        config = self._versions_query().filter(PayrollConfig.effective_from <= (now or utc_now())).first()
        return PayrollConfigSnapshot.from_model(config) if config else None

    def add(self, config: PayrollConfig) -> PayrollConfigSnapshot:
        self.session.add(config)
        self.session.flush()
        return PayrollConfigSnapshot.from_model(config)

    def count(self) -> int:
        return self.session.query(func.count(PayrollConfig.id)).scalar() or 0

    def get_history(self, limit: int = 50, offset: int = 0) -> List[PayrollConfigSnapshot]:
        rows = self._versions_query().offset(offset).limit(limit).all()
        return [PayrollConfigSnapshot.from_model(row) for row in rows]


class LeaveStore:

    def __init__(self, session):
        self.session = session

    def get_approved_leaves(self, driver_id: int, year: int) -> List[LeaveRecord]:
        return self.session.query(LeaveRecord).filter(
            LeaveRecord.driver_id == driver_id,
            LeaveRecord.status == LeaveStatus.APPROVED,
            LeaveRecord.leave_date >= date(year, 1, 1),
            LeaveRecord.leave_date <= date(year, 12, 31)
        ).order_by(LeaveRecord.leave_date, LeaveRecord.id).all()

    def get_leave_usage(self, driver_id: int, year: int, month: Optional[int] = None) -> LeaveUsage:
        """
        Count approved paid and unpaid leave days for a year or a single month.

        Annual leave is paid until the yearly entitlement is used up, in date
        order; later annual days are unpaid. Sick leave is paid and emergency
        leave is unpaid.
        """
        paid = 0
        unpaid = 0
        annual_taken = 0

        for leave in self.get_approved_leaves(driver_id, year):
            if leave.leave_type == LeaveType.ANNUAL:
                annual_taken += 1
                is_paid = annual_taken <= ANNUAL_LEAVE_ENTITLEMENT
            else:
                is_paid = leave.leave_type in PAID_LEAVE_TYPES

            if month is not None and leave.leave_date.month != month:
                continue

            if is_paid:
                paid += 1
            else:
                unpaid += 1

        return LeaveUsage(paid_leaves=paid, unpaid_leaves=unpaid)

    def count_approved_annual_leave(self, driver_id: int, year: int) -> int:
        return sum(1 for leave in self.get_approved_leaves(driver_id, year)
                   if leave.leave_type == LeaveType.ANNUAL)


class AdvanceStore:

    def __init__(self, session):
        self.session = session

    def get(self, advance_id: int) -> Optional[AdvancePayment]:
        return self.session.get(AdvancePayment, advance_id)

    def add(self, advance: AdvancePayment) -> AdvancePayment:
        self.session.add(advance)
        self.session.flush()
        return advance

    def get_config(self) -> Optional[AdvanceConfig]:
        return self.session.query(AdvanceConfig).order_by(
            AdvanceConfig.created_at.desc(), AdvanceConfig.id.desc()
        ).first()

    def get_outstanding_total(self, driver_id: int) -> float:
        total = self.session.query(func.sum(AdvancePayment.approved_amount)).filter(
            AdvancePayment.driver_id == driver_id,
            AdvancePayment.status.in_(OUTSTANDING_ADVANCE_STATUSES),
            AdvancePayment.settled_at.is_(None)
        ).scalar()
        return float(total or 0.0)

    def count_requests_between(self, driver_id: int, start: date, end: date) -> int:
        """Requests dated in [start, end), regardless of outcome"""
        return self.session.query(func.count(AdvancePayment.id)).filter(
            AdvancePayment.driver_id == driver_id,
            AdvancePayment.request_date >= start,
            AdvancePayment.request_date < end
        ).scalar() or 0

    def get_settled_total(self, driver_id: int, payroll_month: str) -> float:
        total = self.session.query(func.sum(AdvancePayment.settlement_amount)).filter(
            AdvancePayment.driver_id == driver_id,
            AdvancePayment.settled_against_payroll_month == payroll_month,
            AdvancePayment.settled_at.isnot(None)
        ).scalar()
        return float(total or 0.0)

"""
Shift Service

Handles the clock-in/clock-out shift lifecycle with odometer continuity
checks, plus admin shift management (manual entry, correction, deletion)
with an audit trail.

State machine per driver:
    NoActiveShift -> clock_in -> ActiveShift -> clock_out -> NoActiveShift
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List
import logging

from sqlalchemy.exc import IntegrityError

from models import Shift, ShiftStatus
from timezone_utils import (get_business_timezone, utc_now, to_utc_naive, to_business_time,
                            business_day_bounds, business_today)
from .transaction_helper import TransactionHelper
from .exceptions import (InvalidInput, DriverNotFound, ShiftNotFound, ActiveShiftExists,
                         NoActiveShift, OdometerRegression, ShiftValidationFailed)

logger = logging.getLogger(__name__)

MAX_FUTURE_DAYS = 30
MIN_SHIFT_HOURS = 0.5
MAX_SHIFT_HOURS = 24
MAX_SHIFT_DISTANCE_KM = 1000


def validate_odometer(value, field_name: str = 'odometer') -> int:
    """Odometer readings are non-negative whole kilometres"""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"{field_name} must be a non-negative integer", {'field': field_name, 'value': value})
    if value < 0:
        raise InvalidInput(f"{field_name} must be a non-negative integer", {'field': field_name, 'value': value})
    return value


def elapsed_minutes(start: datetime, end: datetime) -> int:
    return round((end - start).total_seconds() / 60)


class ShiftService:
    """Service class for the driver shift lifecycle"""

    def __init__(self, session, shift_store, driver_store, tz=None):
        self.session = session
        self.shift_store = shift_store
        self.driver_store = driver_store
        self.tz = tz or get_business_timezone()

    def _get_driver(self, driver_id: int):
        driver = self.driver_store.get(driver_id)
        if not driver:
            raise DriverNotFound(driver_id)
        return driver

    @TransactionHelper.with_transaction
    def clock_in(self, driver_id: int, start_odometer: int, now: Optional[datetime] = None) -> Shift:
        """
        Start a new shift for a driver.

        Args:
            driver_id: ID of driver
            start_odometer: Starting odometer reading (km)
            now: Clock-in instant, defaults to the current time

        Returns:
            Shift: the new active shift

        Raises:
            InvalidInput, DriverNotFound, ActiveShiftExists, OdometerRegression
        """
        validate_odometer(start_odometer, 'start_odometer')
        now = to_utc_naive(now) if now else utc_now()

        driver = self._get_driver(driver_id)
        if not driver.is_active:
            raise InvalidInput('Driver profile is not active', {'driver_id': driver_id})

        active_shift = self.shift_store.get_active_shift(driver_id)
        if active_shift:
            logger.warning(f"Clock-in rejected: driver {driver_id} already has active shift {active_shift.id}")
            raise ActiveShiftExists(driver_id, active_shift.id)

        last_shift = self.shift_store.get_last_completed_shift(driver_id)
        if last_shift and last_shift.end_odometer is not None and start_odometer < last_shift.end_odometer:
            logger.warning(f"Clock-in rejected: driver {driver_id} odometer {start_odometer} "
                           f"below previous end {last_shift.end_odometer}")
            raise OdometerRegression(
                start_odometer, last_shift.end_odometer,
                f"Start odometer ({start_odometer}) must be greater than or equal to "
                f"previous shift end odometer ({last_shift.end_odometer})"
            )

        if last_shift and last_shift.clock_out_time is not None and now < last_shift.clock_out_time:
            logger.warning(f"Clock-in rejected: driver {driver_id} clock-in {now} before previous clock-out "
                           f"{last_shift.clock_out_time}")
            raise InvalidInput('Clock-in cannot be earlier than the previous clock-out', {
                'driver_id': driver_id,
                'previous_clock_out': last_shift.clock_out_time.isoformat()
            })

        shift = Shift()
        shift.driver_id = driver_id
        shift.clock_in_time = now
        shift.start_odometer = start_odometer
        shift.status = ShiftStatus.ACTIVE

        try:
            self.shift_store.add(shift)
        except IntegrityError as e:
            # A concurrent clock-in won the single-active-shift index
            logger.warning(f"Clock-in rejected by storage for driver {driver_id}: {str(e.orig)}")
            raise ActiveShiftExists(driver_id) from e

        logger.info(f"Shift started: Driver {driver_id}, Shift ID {shift.id}, Odometer {start_odometer}")
        return shift

    @TransactionHelper.with_transaction
    def clock_out(self, driver_id: int, end_odometer: int, now: Optional[datetime] = None) -> Shift:
        """
        End the driver's active shift.

        Args:
            driver_id: ID of driver
            end_odometer: Ending odometer reading (km)
            now: Clock-out instant, defaults to the current time

        Returns:
            Shift: the completed shift

        Raises:
            InvalidInput, NoActiveShift, OdometerRegression
        """
        validate_odometer(end_odometer, 'end_odometer')
        now = to_utc_naive(now) if now else utc_now()

        shift = self.shift_store.get_active_shift(driver_id)
        if not shift:
            logger.warning(f"Clock-out rejected: driver {driver_id} has no active shift")
            raise NoActiveShift(driver_id)

        if end_odometer < shift.start_odometer:
            logger.warning(f"Clock-out rejected: shift {shift.id} end odometer {end_odometer} "
                           f"below start {shift.start_odometer}")
            raise OdometerRegression(
                end_odometer, shift.start_odometer,
                f"End odometer ({end_odometer}) must be greater than or equal to "
                f"start odometer ({shift.start_odometer})"
            )

        if now <= shift.clock_in_time:
            raise InvalidInput('Clock-out time must be after clock-in time', {
                'clock_in_time': shift.clock_in_time.isoformat(),
                'clock_out_time': now.isoformat()
            })

        shift.clock_out_time = now
        shift.end_odometer = end_odometer
        shift.total_distance = end_odometer - shift.start_odometer
        shift.duration_minutes = elapsed_minutes(shift.clock_in_time, now)
        shift.status = ShiftStatus.COMPLETED
        self.session.flush()

        logger.info(f"Shift ended: ID {shift.id}, Distance {shift.total_distance} km, "
                    f"Duration {shift.duration_minutes} min")
        return shift

    def get_driver_status(self, driver_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Current shift state of a driver.

        Returns:
            dict: has_active_shift, current_shift, today_shift_count, status
        """
        now = to_utc_naive(now) if now else utc_now()
        self._get_driver(driver_id)

        active_shift = self.shift_store.get_active_shift(driver_id)
        day_start, day_end = business_day_bounds(business_today(now, self.tz), self.tz)
        today_shift_count = self.shift_store.count_shifts_between(driver_id, day_start, day_end)

        current_shift = None
        if active_shift:
            current_shift = {
                'id': active_shift.id,
                'clock_in_time': active_shift.clock_in_time.isoformat(),
                'start_odometer': active_shift.start_odometer,
                'current_duration_minutes': max(0, int((now - active_shift.clock_in_time).total_seconds() // 60))
            }

        return {
            'has_active_shift': active_shift is not None,
            'current_shift': current_shift,
            'today_shift_count': today_shift_count,
            'status': 'clocked_in' if active_shift else 'clocked_out'
        }

    def get_driver_shift_stats(self, driver_id: int) -> Dict[str, Any]:
        self._get_driver(driver_id)
        shifts = self.shift_store.get_driver_shifts(driver_id)
        completed = [s for s in shifts if s.status == ShiftStatus.COMPLETED]

        total_minutes = sum(s.duration_minutes or 0 for s in completed)
        return {
            'total_shifts': len(shifts),
            'active_shifts': len(shifts) - len(completed),
            'completed_shifts': len(completed),
            'total_minutes': total_minutes,
            'total_distance': sum(s.total_distance or 0 for s in completed),
            'average_duration_minutes': round(total_minutes / len(completed), 2) if completed else 0.0,
            'last_shift_time': shifts[0].clock_in_time.isoformat() if shifts else None
        }


@dataclass
class ManualShiftRequest:
    """Admin-entered completed shift"""
    driver_id: int
    clock_in_time: datetime
    clock_out_time: datetime
    start_odometer: int
    end_odometer: int
    notes: Optional[str] = None


@dataclass
class ShiftUpdateRequest:
    """Correction to an existing shift; None leaves a field unchanged"""
    clock_in_time: Optional[datetime] = None
    clock_out_time: Optional[datetime] = None
    start_odometer: Optional[int] = None
    end_odometer: Optional[int] = None
    notes: Optional[str] = None


class AdminShiftService:
    """Service class for admin shift corrections"""

    def __init__(self, session, shift_store, driver_store, audit_service, tz=None):
        self.session = session
        self.shift_store = shift_store
        self.driver_store = driver_store
        self.audit_service = audit_service
        self.tz = tz or get_business_timezone()

    @staticmethod
    def validate_manual_shift(request: ManualShiftRequest, existing_shifts: List[Shift],
                              now: Optional[datetime] = None) -> List[str]:
        """
        Validate an admin-entered shift against the driver's other shifts.

        Args:
            request: Shift data to validate
            existing_shifts: The driver's other shifts
            now: Reference instant for the future-date limit

        Returns:
            List of error messages, empty when valid
        """
        errors = []
        for field in ('driver_id', 'clock_in_time', 'clock_out_time', 'start_odometer', 'end_odometer'):
            if getattr(request, field) is None:
                errors.append(f"{field} is required")
        if errors:
            return errors

        for field in ('start_odometer', 'end_odometer'):
            value = getattr(request, field)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                errors.append(f"{field} must be a non-negative integer")
        if errors:
            return errors

        now = to_utc_naive(now) if now else utc_now()
        clock_in = to_utc_naive(request.clock_in_time)
        clock_out = to_utc_naive(request.clock_out_time)

        if clock_out <= clock_in:
            errors.append('End time must be after start time')

        if request.end_odometer <= request.start_odometer:
            errors.append('End odometer must be greater than start odometer')

        earlier = [s for s in existing_shifts
                   if s.clock_in_time < clock_in and s.end_odometer is not None]
        if earlier:
            previous = max(earlier, key=lambda s: s.clock_in_time)
            if request.start_odometer < previous.end_odometer:
                errors.append(f"Start odometer ({request.start_odometer}) must be >= "
                              f"previous shift end odometer ({previous.end_odometer})")

        later = [s for s in existing_shifts if s.clock_in_time > clock_in]
        if later:
            following = min(later, key=lambda s: s.clock_in_time)
            if request.end_odometer > following.start_odometer:
                errors.append(f"End odometer ({request.end_odometer}) must be <= "
                              f"next shift start odometer ({following.start_odometer})")

        if clock_in > now + timedelta(days=MAX_FUTURE_DAYS):
            errors.append(f"Shift date cannot be more than {MAX_FUTURE_DAYS} days in the future")

        duration_hours = (clock_out - clock_in).total_seconds() / 3600
        if duration_hours > MAX_SHIFT_HOURS:
            errors.append(f"Shift duration cannot exceed {MAX_SHIFT_HOURS} hours")
        if duration_hours < MIN_SHIFT_HOURS:
            errors.append('Shift duration must be at least 30 minutes')

        if request.end_odometer - request.start_odometer > MAX_SHIFT_DISTANCE_KM:
            errors.append(f"Shift distance cannot exceed {MAX_SHIFT_DISTANCE_KM} km")

        return errors

    def _apply_completed_values(self, shift: Shift, clock_in: datetime, clock_out: datetime,
                                start_odometer: int, end_odometer: int, notes: Optional[str]):
        shift.clock_in_time = clock_in
        shift.clock_out_time = clock_out
        shift.start_odometer = start_odometer
        shift.end_odometer = end_odometer
        shift.total_distance = end_odometer - start_odometer
        shift.duration_minutes = elapsed_minutes(clock_in, clock_out)
        shift.status = ShiftStatus.COMPLETED
        shift.notes = notes

    @TransactionHelper.with_transaction
    def create_manual_shift(self, request: ManualShiftRequest, admin_id: Optional[int] = None,
                            now: Optional[datetime] = None) -> Shift:
        """
        Create a completed shift on behalf of a driver.

        Raises:
            DriverNotFound, InvalidInput, ShiftValidationFailed
        """
        if request.driver_id is not None and not self.driver_store.get(request.driver_id):
            raise DriverNotFound(request.driver_id)

        existing_shifts = self.shift_store.get_driver_shifts(request.driver_id) \
            if request.driver_id is not None else []
        errors = self.validate_manual_shift(request, existing_shifts, now)
        if errors:
            logger.warning(f"Manual shift rejected for driver {request.driver_id}: {errors}")
            raise ShiftValidationFailed(errors)

        clock_in = to_utc_naive(request.clock_in_time)
        clock_out = to_utc_naive(request.clock_out_time)

        shift_date = to_business_time(clock_in, self.tz).date()
        day_start, day_end = business_day_bounds(shift_date, self.tz)
        if self.shift_store.get_shifts_between(request.driver_id, day_start, day_end):
            raise InvalidInput('Driver already has a shift on this date', {
                'driver_id': request.driver_id,
                'shift_date': shift_date.isoformat()
            })

        shift = Shift()
        shift.driver_id = request.driver_id
        self._apply_completed_values(shift, clock_in, clock_out, request.start_odometer,
                                     request.end_odometer, request.notes)
        self.shift_store.add(shift)

        self.audit_service.log_action(
            action='create_manual_shift',
            entity_type='shift',
            entity_id=shift.id,
            new_values=shift.to_dict(),
            changed_by=admin_id,
            notes=request.notes
        )

        logger.info(f"Manual shift created: ID {shift.id} for driver {request.driver_id} by admin {admin_id}")
        return shift

    @TransactionHelper.with_transaction
    def update_shift(self, shift_id: int, request: ShiftUpdateRequest, admin_id: Optional[int] = None,
                     now: Optional[datetime] = None) -> Shift:
        """
        Correct an existing shift; distance and duration are re-derived.

        Raises:
            ShiftNotFound, ShiftValidationFailed
        """
        shift = self.shift_store.get(shift_id)
        if not shift:
            raise ShiftNotFound(shift_id)

        old_values = shift.to_dict()

        merged = ManualShiftRequest(
            driver_id=shift.driver_id,
            clock_in_time=request.clock_in_time if request.clock_in_time is not None else shift.clock_in_time,
            clock_out_time=request.clock_out_time if request.clock_out_time is not None else shift.clock_out_time,
            start_odometer=request.start_odometer if request.start_odometer is not None else shift.start_odometer,
            end_odometer=request.end_odometer if request.end_odometer is not None else shift.end_odometer,
            notes=request.notes if request.notes is not None else shift.notes
        )

        other_shifts = [s for s in self.shift_store.get_driver_shifts(shift.driver_id) if s.id != shift.id]
        errors = self.validate_manual_shift(merged, other_shifts, now)
        if errors:
            logger.warning(f"Shift update rejected for shift {shift_id}: {errors}")
            raise ShiftValidationFailed(errors)

        self._apply_completed_values(shift, to_utc_naive(merged.clock_in_time), to_utc_naive(merged.clock_out_time),
                                     merged.start_odometer, merged.end_odometer, merged.notes)
        self.session.flush()

        self.audit_service.log_action(
            action='update_shift',
            entity_type='shift',
            entity_id=shift.id,
            old_values=old_values,
            new_values=shift.to_dict(),
            changed_by=admin_id
        )

        logger.info(f"Shift updated: ID {shift_id} by admin {admin_id}")
        return shift

    @TransactionHelper.with_transaction
    def delete_shift(self, shift_id: int, admin_id: Optional[int] = None, reason: Optional[str] = None) -> bool:
        shift = self.shift_store.get(shift_id)
        if not shift:
            raise ShiftNotFound(shift_id)

        self.audit_service.log_action(
            action='delete_shift',
            entity_type='shift',
            entity_id=shift.id,
            old_values=shift.to_dict(),
            changed_by=admin_id,
            notes=reason
        )
        self.shift_store.delete(shift)

        logger.info(f"Shift deleted: ID {shift_id} by admin {admin_id}, reason: {reason or 'not given'}")
        return True

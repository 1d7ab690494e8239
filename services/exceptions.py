"""
Payroll Engine Exceptions

Every failure surfaced by the shift, payroll and advance services is one of
these. Each carries a stable `code` plus the numeric limits involved so a
collaborator can render a precise message without parsing strings.
"""

from typing import Any, Dict, List, Optional


class PayrollError(Exception):
    """Base class for all payroll engine errors"""

    code = 'PAYROLL_ERROR'

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'error': self.code,
            'message': self.message,
            'details': self.details
        }


# Validation errors: bad input shape or range, never retried
class ValidationError(PayrollError):
    code = 'VALIDATION_ERROR'


class InvalidInput(ValidationError):
    code = 'INVALID_INPUT'


class InvalidPeriod(ValidationError):
    code = 'INVALID_PERIOD'


class OdometerRegression(ValidationError):
    code = 'ODOMETER_REGRESSION'

    def __init__(self, reading: int, minimum: int, message: Optional[str] = None):
        super().__init__(
            message or f"Odometer reading ({reading}) must be greater than or equal to {minimum}",
            {'reading': reading, 'minimum': minimum}
        )
        self.reading = reading
        self.minimum = minimum


class ShiftValidationFailed(ValidationError):
    code = 'SHIFT_VALIDATION_FAILED'

    def __init__(self, errors: List[str]):
        super().__init__('Validation failed: ' + ', '.join(errors), {'errors': list(errors)})
        self.errors = list(errors)


class PayrollConfigInvalid(ValidationError):
    code = 'CONFIG_VALIDATION_FAILED'

    def __init__(self, errors: List[str]):
        super().__init__('Validation errors: ' + ', '.join(errors), {'errors': list(errors)})
        self.errors = list(errors)


# State conflicts: the operation does not apply to the current state
class StateConflictError(PayrollError):
    code = 'STATE_CONFLICT'


class ActiveShiftExists(StateConflictError):
    code = 'ACTIVE_SHIFT_EXISTS'

    def __init__(self, driver_id: int, shift_id: Optional[int] = None):
        super().__init__(
            'Driver already has an active shift. Please clock out first.',
            {'driver_id': driver_id, 'active_shift_id': shift_id}
        )


class NoActiveShift(StateConflictError):
    code = 'NO_ACTIVE_SHIFT'

    def __init__(self, driver_id: int):
        super().__init__('No active shift found to clock out', {'driver_id': driver_id})


class InvalidAdvanceState(StateConflictError):
    code = 'INVALID_ADVANCE_STATE'


class AdvanceNotEligible(StateConflictError):
    code = 'ELIGIBILITY_CHECK_FAILED'

    def __init__(self, eligibility):
        super().__init__('Advance request not eligible', {
            'restrictions': list(eligibility.restrictions),
            'available_amount': eligibility.available_amount,
            'max_advance_amount': eligibility.max_advance_amount
        })
        self.eligibility = eligibility


# Not found
class NotFoundError(PayrollError):
    code = 'NOT_FOUND'


class DriverNotFound(NotFoundError):
    code = 'DRIVER_NOT_FOUND'

    def __init__(self, driver_id: int):
        super().__init__(f"Driver with ID {driver_id} not found", {'driver_id': driver_id})


class ShiftNotFound(NotFoundError):
    code = 'SHIFT_NOT_FOUND'

    def __init__(self, shift_id: int):
        super().__init__(f"Shift not found with ID: {shift_id}", {'shift_id': shift_id})


class AdvanceNotFound(NotFoundError):
    code = 'ADVANCE_NOT_FOUND'

    def __init__(self, advance_id: int):
        super().__init__(f"Advance request {advance_id} not found", {'advance_id': advance_id})


# Systemic: operators must fix configuration, payroll never defaults it
class ConfigurationMissing(PayrollError):
    code = 'CONFIGURATION_MISSING'

    def __init__(self, message: str = 'No payroll configuration found'):
        super().__init__(message)

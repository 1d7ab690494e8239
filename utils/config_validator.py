"""
Configuration validation for the payroll engine
Ensures the business timezone and overtime window settings are usable
"""
import logging
from typing import List, Mapping, Tuple, Any

import pytz

logger = logging.getLogger(__name__)

class ConfigValidationError(Exception):
    """Raised when critical configuration is missing or invalid"""
    pass

def validate_timezone(name: Any) -> Tuple[bool, List[str]]:
    """
    Validate the business timezone name.

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    issues = []
    if not name:
        issues.append("Missing business timezone (BUSINESS_TIMEZONE)")
    elif name not in pytz.all_timezones_set:
        issues.append(f"Unknown business timezone '{name}'")
    return len(issues) == 0, issues

def validate_overtime_window(start: Any, end: Any) -> Tuple[bool, List[str]]:
    """
    Validate the standard working window used for overtime classification.

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    issues = []
    try:
        start = float(start)
        end = float(end)
    except (TypeError, ValueError):
        return False, ["Overtime window bounds must be numbers (OVERTIME_WINDOW_START/END)"]

    if not 0 <= start <= 24:
        issues.append("OVERTIME_WINDOW_START must be between 0 and 24")
    if not 0 <= end <= 24:
        issues.append("OVERTIME_WINDOW_END must be between 0 and 24")
    if start > end:
        issues.append("OVERTIME_WINDOW_START must not be later than OVERTIME_WINDOW_END")
    return len(issues) == 0, issues

def validate_payroll_settings(config: Mapping[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate all payroll-related application settings.

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    tz_valid, tz_issues = validate_timezone(config.get('BUSINESS_TIMEZONE'))
    window_valid, window_issues = validate_overtime_window(
        config.get('OVERTIME_WINDOW_START'), config.get('OVERTIME_WINDOW_END')
    )

    all_issues = tz_issues + window_issues
    for issue in all_issues:
        logger.warning(f"PAYROLL_CONFIG: Issue - {issue}")

    return tz_valid and window_valid, all_issues

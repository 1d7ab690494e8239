from datetime import datetime, timedelta
import pytz

DEFAULT_BUSINESS_TIMEZONE = 'Asia/Kolkata'


def get_business_timezone(name=None):
    """Resolve the business reference timezone (IST unless configured otherwise)"""
    return pytz.timezone(name or DEFAULT_BUSINESS_TIMEZONE)


def utc_now():
    """Current instant as naive UTC datetime for database storage"""
    return datetime.now(pytz.utc).replace(tzinfo=None)


def to_utc_naive(dt):
    """Normalise an aware or naive-UTC datetime to naive UTC"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(pytz.utc).replace(tzinfo=None)


def to_business_time(dt, tz=None):
    """Convert a stored instant (naive values are UTC) to the business timezone"""
    if dt is None:
        return None
    tz = tz or get_business_timezone()
    if dt.tzinfo is None:
        dt = pytz.utc.localize(dt)
    return dt.astimezone(tz)


def business_day_bounds(day, tz=None):
    """Return the naive-UTC [start, end) range covering a business calendar day"""
    tz = tz or get_business_timezone()
    start = tz.localize(datetime(day.year, day.month, day.day))
    end = tz.localize(datetime.combine(day + timedelta(days=1), datetime.min.time()))
    return to_utc_naive(start), to_utc_naive(end)


def business_month_bounds(year, month, tz=None):
    """Return the naive-UTC [start, end) range covering a business calendar month"""
    tz = tz or get_business_timezone()
    start = tz.localize(datetime(year, month, 1))
    if month == 12:
        end = tz.localize(datetime(year + 1, 1, 1))
    else:
        end = tz.localize(datetime(year, month + 1, 1))
    return to_utc_naive(start), to_utc_naive(end)


def business_today(now=None, tz=None):
    """Calendar date of `now` (naive UTC) in the business timezone"""
    return to_business_time(now or utc_now(), tz).date()

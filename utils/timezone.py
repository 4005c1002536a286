from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple

import pytz

from config import HOTEL_TIMEZONE

# Zona horaria centralizada del hotel
HOTEL_TZ = pytz.timezone(HOTEL_TIMEZONE)


def get_hotel_now() -> datetime:
    """Returns current time in Hotel Timezone"""
    return datetime.now(HOTEL_TZ)


def get_hotel_today() -> date:
    """Fecha operativa del hotel (la que cuenta para 'check-in >= hoy')"""
    return get_hotel_now().date()


def utcnow() -> datetime:
    """Timestamp UTC con tzinfo, para los sellos checked_in_at / paid_at / etc."""
    return datetime.now(pytz.utc)


def to_hotel_time(dt: datetime) -> datetime:
    """Converts a datetime to Hotel Timezone"""
    if dt.tzinfo is None:
        return pytz.utc.localize(dt).astimezone(HOTEL_TZ)
    return dt.astimezone(HOTEL_TZ)


def hotel_day_bounds_utc(start: date, end: Optional[date] = None) -> Tuple[datetime, datetime]:
    """[inicio de `start`, inicio del día siguiente a `end`) en hora del hotel, expresado en UTC"""
    end = end or start
    lower = HOTEL_TZ.localize(datetime.combine(start, time.min)).astimezone(pytz.utc)
    upper = HOTEL_TZ.localize(datetime.combine(end + timedelta(days=1), time.min)).astimezone(pytz.utc)
    return lower, upper


def hotel_date_of(dt: datetime) -> date:
    return to_hotel_time(dt).date()

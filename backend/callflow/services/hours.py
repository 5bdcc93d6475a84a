from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from callflow.core.config import Settings


def business_status(settings: Settings, now: Optional[datetime] = None) -> dict:
    tz = ZoneInfo(settings.business_timezone)
    if settings.force_hours_open:
        return {"status": "open", "timezone": settings.business_timezone, "forced": True}
    local = (now or datetime.now(tz)).astimezone(tz)
    hour = local.hour + local.minute / 60
    is_open = (
        local.weekday() in settings.business_days
        and settings.business_open_hour <= hour < settings.business_close_hour
    )
    return {
        "status": "open" if is_open else "closed",
        "timezone": settings.business_timezone,
        "forced": False,
    }

from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from app.config import settings


APP_TIMEZONE = settings.app_timezone or "Asia/Kolkata"
APP_ZONEINFO = ZoneInfo(APP_TIMEZONE)


class TimeProvider:
    def now(self) -> datetime:
        return datetime.now(APP_ZONEINFO)

    def today(self) -> date:
        return self.now().date()

    def utc_today(self) -> date:
        return self.now().astimezone(timezone.utc).date()

    def audit_clock(self) -> str:
        return self.now().strftime('%H:%M:%S')


default_time_provider = TimeProvider()

"""
조회 시점에 계산되는 파생 필드. 저장하지 않는다.
"""
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from lab_registry.core.config import settings


def format_duration(seconds: Optional[int]) -> str:
    seconds = max(int(seconds or 0), 0)
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def format_lab_time(value: Optional[datetime], tz_name: Optional[str] = None) -> Optional[str]:
    """naive UTC 값을 랩 현지 시간 문자열로 변환"""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    local = value.astimezone(ZoneInfo(tz_name or settings.LAB_TIMEZONE))
    return local.strftime("%d/%m/%Y, %I:%M:%S %p")

import math
import random
import string
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

BLOCKED = "Blocked"
NOT_AVAILABLE = "N/A"
UNKNOWN = "Unknown"
DIRECT = "Direct"
NO_ERROR = "none"

_ID_ALPHABET = string.ascii_lowercase + string.digits


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def timestamp_now() -> str:
    return now_utc().isoformat(timespec="seconds")


def new_event_id(suffix_length: int = 9) -> str:
    suffix = ''.join(random.choice(_ID_ALPHABET) for _ in range(suffix_length))
    return f"{int(time.time() * 1000)}{suffix}"


def round_accuracy(raw: Optional[str]) -> Union[int, str]:
    """Round a client accuracy to whole meters, half up. Anything unusable is N/A."""
    if not raw:
        return NOT_AVAILABLE
    try:
        value = float(raw)
    except ValueError:
        return NOT_AVAILABLE
    if not math.isfinite(value):
        return NOT_AVAILABLE
    return int(math.floor(value + 0.5))


class EventStatus(str, Enum):
    success = "success"
    blocked = "blocked"


# Ingest query string, every field optional
class BeaconQuery(BaseModel):
    lat: Optional[str] = None
    lng: Optional[str] = None
    acc: Optional[str] = None
    ua: Optional[str] = None
    screen: Optional[str] = None
    referer: Optional[str] = None
    time: Optional[str] = None
    error: Optional[str] = None


# Collection: events (append-only, newest first)
class EventRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, use_enum_values=True)

    id: str = Field(default_factory=new_event_id, description="Assigned at commit time")
    received_at: str = Field(default_factory=timestamp_now, alias="receivedAt")
    source_address: str = Field(UNKNOWN, alias="sourceAddress")
    latitude: str = BLOCKED
    longitude: str = BLOCKED
    accuracy_meters: Union[int, str] = Field(NOT_AVAILABLE, alias="accuracyMeters")
    user_agent: str = Field(UNKNOWN, alias="userAgent")
    screen_size: str = Field(UNKNOWN, alias="screenSize")
    referrer: str = DIRECT
    status: EventStatus = EventStatus.blocked.value
    error_code: str = Field(NO_ERROR, alias="errorCode")
    client_reported_time: str = Field(default_factory=lambda: now_utc().isoformat(), alias="clientReportedTime")

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")

    def audit_line(self) -> str:
        return (
            f"[{self.received_at}] {self.source_address} | "
            f"Location: {self.latitude}, {self.longitude} | "
            f"Status: {self.status} | Error: {self.error_code}"
        )


def build_event_record(
    beacon: BeaconQuery,
    source_address: Optional[str],
    user_agent: Optional[str] = None,
    referrer: Optional[str] = None,
) -> EventRecord:
    """
    Normalize a beacon into an EventRecord.

    Header values (user agent, referrer) are only used when the query string
    does not carry the field. Absent location is recorded as "Blocked".
    """
    latitude = beacon.lat or BLOCKED
    return EventRecord(
        source_address=source_address or UNKNOWN,
        latitude=latitude,
        longitude=beacon.lng or BLOCKED,
        accuracy_meters=round_accuracy(beacon.acc),
        user_agent=beacon.ua or user_agent or UNKNOWN,
        screen_size=beacon.screen or UNKNOWN,
        referrer=beacon.referer or referrer or DIRECT,
        status=EventStatus.blocked if latitude == BLOCKED else EventStatus.success,
        error_code=beacon.error or NO_ERROR,
        client_reported_time=beacon.time or now_utc().isoformat(),
    )


class ResetResponse(BaseModel):
    success: bool
    message: str
    timestamp: str

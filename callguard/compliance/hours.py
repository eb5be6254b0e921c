"""
Calling-hours policy for CallGuard
TCPA time-of-day window in the recipient's local time
"""

from dataclasses import dataclass
from datetime import datetime, time
from zoneinfo import ZoneInfo

from ..config import ComplianceConfig
from ..constants import CallingHoursDefaults
from ..exceptions import ValidationError


@dataclass(frozen=True)
class CallingHoursPolicy:
    """Allowed window ``[start, end)``; an end before start wraps past midnight"""
    start: time = time(CallingHoursDefaults.START_HOUR, 0)
    end: time = time(CallingHoursDefaults.END_HOUR, 0)

    def __post_init__(self):
        if self.start == self.end:
            raise ValidationError("Calling window must not be empty", field="calling_hours")

    @classmethod
    def from_config(cls, config: ComplianceConfig) -> "CallingHoursPolicy":
        return cls(start=config.calling_hours_start, end=config.calling_hours_end)

    def is_allowed(self, local: time) -> bool:
        local = local.replace(tzinfo=None)
        if self.start < self.end:
            return self.start <= local < self.end
        return local >= self.start or local < self.end


def to_recipient_local(now: datetime, zone: ZoneInfo) -> datetime:
    """
    Express ``now`` in the recipient's zone. Aware datetimes are converted;
    naive ones are taken as wall-clock time already in that zone.
    """
    if now.tzinfo is None:
        return now.replace(tzinfo=zone)
    return now.astimezone(zone)

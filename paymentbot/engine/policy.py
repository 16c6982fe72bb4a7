"""
Cycle-limit policy and its metadata wire format.

Stripe only lets us carry flat string -> string metadata on prices and
subscriptions, so the limit is stored as an absolute cutoff plus enough fields
to reconstruct how it was computed:

    end_date_cycles  "12"
    end_timestamp    "1731024000"   (UTC epoch seconds)
    interval         "month"
    interval_count   "1"
    service_name     "Premium"

Interval lengths are fixed approximations (a month is 30 days, a year 365).
Calendar-accurate arithmetic would change cutoffs that are already stored on
live subscriptions.
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional

DAY_SECONDS = 24 * 3600

INTERVAL_SECONDS: Dict[str, int] = {
    "day": DAY_SECONDS,
    "week": 7 * DAY_SECONDS,
    "month": 30 * DAY_SECONDS,
    "year": 365 * DAY_SECONDS,
}

DEFAULT_INTERVAL = "month"
DEFAULT_INTERVAL_COUNT = 1

# 9999-12-31T23:59:59Z, the last instant a datetime (and Stripe cancel_at) can hold
MAX_CUTOFF = 253402300799

# metadata keys
END_CYCLES_KEY = "end_date_cycles"
END_TIMESTAMP_KEY = "end_timestamp"
INTERVAL_KEY = "interval"
INTERVAL_COUNT_KEY = "interval_count"
SERVICE_NAME_KEY = "service_name"
REFERENCE_KEY = "reference_number"


class PolicyMetadataError(ValueError):
    pass


def interval_seconds(interval: Optional[str]) -> int:
    # unknown intervals bill like months
    return INTERVAL_SECONDS.get(interval or DEFAULT_INTERVAL, INTERVAL_SECONDS[DEFAULT_INTERVAL])


def resolve_interval(interval: Optional[str], interval_count: Optional[int]) -> tuple:
    """Apply the interval / count defaults independently of each other."""
    resolved_interval = interval or DEFAULT_INTERVAL
    resolved_count = interval_count if interval_count and interval_count > 0 else DEFAULT_INTERVAL_COUNT
    return resolved_interval, resolved_count


def compute_cutoff(*, now: datetime, interval: Optional[str], interval_count: int, end_cycles: int) -> int:
    if end_cycles <= 0:
        raise PolicyMetadataError("end_cycles must be positive to compute a cutoff")
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    start = int(now.timestamp())
    cutoff = start + interval_count * end_cycles * interval_seconds(interval)
    if cutoff > MAX_CUTOFF:
        raise PolicyMetadataError(f"cycle limit ends after year 9999 ({end_cycles} x {interval_count} {interval})")
    return cutoff


def _parse_int(md: Mapping[str, str], key: str) -> int:
    raw = md.get(key)
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        raise PolicyMetadataError(f"metadata '{key}' is not an integer: {raw!r}")


@dataclass(frozen=True)
class SubscriptionPolicyMetadata:
    end_cycles: int
    cutoff: int
    interval: str
    interval_count: int
    service_name: Optional[str] = None

    @classmethod
    def build(
        cls,
        *,
        now: datetime,
        end_cycles: int,
        interval: Optional[str],
        interval_count: Optional[int],
        service_name: Optional[str] = None,
    ) -> "SubscriptionPolicyMetadata":
        interval, interval_count = resolve_interval(interval, interval_count)
        cutoff = compute_cutoff(now=now, interval=interval, interval_count=interval_count, end_cycles=end_cycles)
        return cls(
            end_cycles=end_cycles,
            cutoff=cutoff,
            interval=interval,
            interval_count=interval_count,
            service_name=service_name,
        )

    @property
    def cutoff_at(self) -> datetime:
        return datetime.fromtimestamp(self.cutoff, tz=timezone.utc)

    def to_metadata(self) -> Dict[str, str]:
        md = {
            END_CYCLES_KEY: str(self.end_cycles),
            END_TIMESTAMP_KEY: str(self.cutoff),
            INTERVAL_KEY: self.interval,
            INTERVAL_COUNT_KEY: str(self.interval_count),
        }
        if self.service_name:
            md[SERVICE_NAME_KEY] = self.service_name
        return md

    @classmethod
    def from_metadata(cls, md: Optional[Mapping[str, str]]) -> Optional["SubscriptionPolicyMetadata"]:
        """
        None when the subscription carries no cycle limit.
        Raises PolicyMetadataError when the limit is present but unusable;
        a missing cutoff is never guessed from the other fields.
        """
        md = md or {}
        if END_CYCLES_KEY not in md:
            return None
        if END_TIMESTAMP_KEY not in md:
            raise PolicyMetadataError(f"'{END_CYCLES_KEY}' present without '{END_TIMESTAMP_KEY}'")

        end_cycles = _parse_int(md, END_CYCLES_KEY)
        cutoff = _parse_int(md, END_TIMESTAMP_KEY)
        if cutoff <= 0 or cutoff > MAX_CUTOFF:
            raise PolicyMetadataError(f"'{END_TIMESTAMP_KEY}' out of range: {cutoff}")
        if end_cycles <= 0:
            raise PolicyMetadataError(f"'{END_CYCLES_KEY}' must be positive, got {end_cycles}")

        # informational fields; tolerate their absence
        interval_count = DEFAULT_INTERVAL_COUNT
        if md.get(INTERVAL_COUNT_KEY):
            try:
                interval_count = _parse_int(md, INTERVAL_COUNT_KEY)
            except PolicyMetadataError:
                interval_count = DEFAULT_INTERVAL_COUNT

        return cls(
            end_cycles=end_cycles,
            cutoff=cutoff,
            interval=md.get(INTERVAL_KEY) or DEFAULT_INTERVAL,
            interval_count=interval_count,
            service_name=md.get(SERVICE_NAME_KEY),
        )

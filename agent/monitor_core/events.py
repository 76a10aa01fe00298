"""
Telemetry events — a tagged union with a JSON wire codec.

Every event class carries a class-level ``kind`` tag. ``to_wire`` and
``from_wire`` dispatch on that tag only; an unknown tag is a
SerializationError, never a silent fallthrough.

Wire shapes (timestamps are ISO-8601 with offset):
  app_session     eventType, appName, packageName, sessionStart, sessionEnd
  app_tap         eventType, timestamp, appName, packageName
  intervention    eventType, interventionStart, interventionEnd, appName,
                  interventionType, videoDuration?, requiredWatchTime?, buttonClicked
  device_status   eventType, batteryLevel, isCharging, connectionType,
                  connectionStrength, appVersion, lastBatchSent
  daily_summary   eventType, date, totalScreenTime, appTotals
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar, Dict, Optional


class SerializationError(ValueError):
    """Event cannot be encoded or decoded. Such events are dropped."""


class EventType(str, enum.Enum):
    APP_SESSION = "app_session"
    APP_TAP = "app_tap"
    INTERVENTION = "intervention"
    DEVICE_STATUS = "device_status"
    DAILY_SUMMARY = "daily_summary"


def stamp(ts, tz=None) -> datetime:
    """Epoch seconds → aware datetime (local zone unless ``tz`` is given)."""
    if tz is not None:
        return datetime.fromtimestamp(ts, tz=tz)
    return datetime.fromtimestamp(ts).astimezone()


# ─── Event variants ──────────────────────────────────────────────

@dataclass(frozen=True)
class AppSession:
    kind: ClassVar[EventType] = EventType.APP_SESSION

    app_name: str
    package_name: str
    started_at: datetime
    ended_at: datetime

    def __post_init__(self):
        if self.ended_at < self.started_at:
            raise ValueError(
                f"Session for {self.package_name} ends before it starts "
                f"({self.ended_at.isoformat()} < {self.started_at.isoformat()})"
            )

    @property
    def duration_sec(self) -> float:
        return (self.ended_at - self.started_at).total_seconds()


@dataclass(frozen=True)
class AppTap:
    kind: ClassVar[EventType] = EventType.APP_TAP

    app_name: str
    package_name: str
    recorded_at: datetime


@dataclass(frozen=True)
class InterventionRecord:
    kind: ClassVar[EventType] = EventType.INTERVENTION

    app_name: str
    intervention_type: str
    started_at: datetime
    ended_at: datetime
    button_clicked: str
    video_duration_sec: Optional[int] = None
    required_watch_sec: Optional[int] = None


@dataclass(frozen=True)
class DeviceStatus:
    kind: ClassVar[EventType] = EventType.DEVICE_STATUS

    battery_level: int
    is_charging: bool
    connection_type: str
    connection_strength: str
    app_version: str
    captured_at: datetime
    last_batch_sent: Optional[datetime] = None


@dataclass(frozen=True)
class AppStats:
    minutes: int = 0
    sessions: int = 0
    total_taps: int = 0
    total_delays: int = 0
    total_abandonments: int = 0
    total_interruptions: int = 0


@dataclass(frozen=True)
class DailySummary:
    kind: ClassVar[EventType] = EventType.DAILY_SUMMARY

    date: str
    total_screen_time: int
    app_totals: Dict[str, AppStats] = field(default_factory=dict)


# ─── Encoding ────────────────────────────────────────────────────

def _iso(value, name):
    if not isinstance(value, datetime) or value.tzinfo is None:
        raise SerializationError(f"{name} must be a timezone-aware datetime, got {value!r}")
    return value.isoformat()


def _stats_to_wire(stats):
    return {
        "minutes": stats.minutes,
        "sessions": stats.sessions,
        "totalTaps": stats.total_taps,
        "totalDelays": stats.total_delays,
        "totalAbandonments": stats.total_abandonments,
        "totalInterruptions": stats.total_interruptions,
    }


def to_wire(event) -> dict:
    """Encode an event as the collector's JSON object."""
    kind = getattr(event, "kind", None)

    if kind is EventType.APP_SESSION:
        return {
            "eventType": kind.value,
            "appName": event.app_name,
            "packageName": event.package_name,
            "sessionStart": _iso(event.started_at, "sessionStart"),
            "sessionEnd": _iso(event.ended_at, "sessionEnd"),
        }

    if kind is EventType.APP_TAP:
        return {
            "eventType": kind.value,
            "timestamp": _iso(event.recorded_at, "timestamp"),
            "appName": event.app_name,
            "packageName": event.package_name,
        }

    if kind is EventType.INTERVENTION:
        payload = {
            "eventType": kind.value,
            "interventionStart": _iso(event.started_at, "interventionStart"),
            "interventionEnd": _iso(event.ended_at, "interventionEnd"),
            "appName": event.app_name,
            "interventionType": event.intervention_type,
        }
        if event.video_duration_sec is not None:
            payload["videoDuration"] = int(event.video_duration_sec)
        if event.required_watch_sec is not None:
            payload["requiredWatchTime"] = int(event.required_watch_sec)
        payload["buttonClicked"] = event.button_clicked
        return payload

    if kind is EventType.DEVICE_STATUS:
        return {
            "eventType": kind.value,
            "batteryLevel": int(event.battery_level),
            "isCharging": bool(event.is_charging),
            "connectionType": event.connection_type,
            "connectionStrength": event.connection_strength,
            "appVersion": event.app_version,
            "lastBatchSent": _iso(event.last_batch_sent or event.captured_at, "lastBatchSent"),
        }

    if kind is EventType.DAILY_SUMMARY:
        return {
            "eventType": kind.value,
            "date": event.date,
            "totalScreenTime": int(event.total_screen_time),
            "appTotals": {name: _stats_to_wire(s) for name, s in event.app_totals.items()},
        }

    raise SerializationError(f"Unknown event kind for {type(event).__name__}")


# ─── Decoding (reference deserializer) ───────────────────────────

def _parse_ts(payload, key):
    try:
        value = datetime.fromisoformat(payload[key])
    except KeyError:
        raise SerializationError(f"Missing field {key!r}") from None
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Bad timestamp in {key!r}: {e}") from None
    if value.tzinfo is None:
        raise SerializationError(f"Timestamp {key!r} has no UTC offset")
    return value


def _field(payload, key):
    try:
        return payload[key]
    except KeyError:
        raise SerializationError(f"Missing field {key!r}") from None


def from_wire(payload):
    """Decode a collector JSON object back into an event."""
    if not isinstance(payload, dict):
        raise SerializationError(f"Expected a JSON object, got {type(payload).__name__}")
    try:
        kind = EventType(payload.get("eventType"))
    except ValueError:
        raise SerializationError(f"Unknown eventType {payload.get('eventType')!r}") from None

    try:
        if kind is EventType.APP_SESSION:
            return AppSession(
                app_name=_field(payload, "appName"),
                package_name=_field(payload, "packageName"),
                started_at=_parse_ts(payload, "sessionStart"),
                ended_at=_parse_ts(payload, "sessionEnd"),
            )

        if kind is EventType.APP_TAP:
            return AppTap(
                app_name=_field(payload, "appName"),
                package_name=_field(payload, "packageName"),
                recorded_at=_parse_ts(payload, "timestamp"),
            )

        if kind is EventType.INTERVENTION:
            return InterventionRecord(
                app_name=_field(payload, "appName"),
                intervention_type=_field(payload, "interventionType"),
                started_at=_parse_ts(payload, "interventionStart"),
                ended_at=_parse_ts(payload, "interventionEnd"),
                button_clicked=_field(payload, "buttonClicked"),
                video_duration_sec=payload.get("videoDuration"),
                required_watch_sec=payload.get("requiredWatchTime"),
            )

        if kind is EventType.DEVICE_STATUS:
            last_sent = _parse_ts(payload, "lastBatchSent")
            return DeviceStatus(
                battery_level=_field(payload, "batteryLevel"),
                is_charging=_field(payload, "isCharging"),
                connection_type=_field(payload, "connectionType"),
                connection_strength=_field(payload, "connectionStrength"),
                app_version=_field(payload, "appVersion"),
                captured_at=last_sent,
                last_batch_sent=last_sent,
            )

        if kind is EventType.DAILY_SUMMARY:
            totals = {}
            for name, s in _field(payload, "appTotals").items():
                totals[name] = AppStats(
                    minutes=s["minutes"],
                    sessions=s["sessions"],
                    total_taps=s["totalTaps"],
                    total_delays=s["totalDelays"],
                    total_abandonments=s["totalAbandonments"],
                    total_interruptions=s["totalInterruptions"],
                )
            return DailySummary(
                date=_field(payload, "date"),
                total_screen_time=_field(payload, "totalScreenTime"),
                app_totals=totals,
            )
    except (KeyError, TypeError, AttributeError) as e:
        raise SerializationError(f"Malformed {kind.value} payload: {e}") from None
    except ValueError as e:
        # AppSession ordering check
        raise SerializationError(str(e)) from None

    raise SerializationError(f"Unhandled eventType {kind.value!r}")

"""
Timestamp Normalisation
========================

Converts whatever a store hands back into timezone-aware UTC datetimes
before records reach the domain layer.

Accepted inputs:
- datetime (naive values are taken as UTC, which is what SQLite returns)
- date
- ISO-8601 strings, including a trailing "Z"
- epoch seconds or epoch milliseconds (int, float or digit strings)
- wrapper objects exposing to_datetime() or toDate()

Anything else yields None with a warning. Nothing here raises: the
scoring engine treats a missing instant as "now".
"""

from datetime import date, datetime, timezone
from typing import Any, Mapping, Optional

from campus_health.health.domain import Issue
from campus_health.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

# Epoch values above this are milliseconds (year 5138 in seconds)
EPOCH_MILLIS_THRESHOLD = 10 ** 11


def _from_epoch(value: float) -> datetime:
    if abs(value) >= EPOCH_MILLIS_THRESHOLD:
        value = value / 1000
    return datetime.fromtimestamp(value, tz=timezone.utc)


def to_instant(value: Any) -> Optional[datetime]:
    """Best-effort conversion of a stored timestamp to an aware UTC datetime."""
    if value is None:
        return None

    try:
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc)

        if isinstance(value, date):
            return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

        for accessor in ("to_datetime", "toDate"):
            converter = getattr(value, accessor, None)
            if callable(converter):
                return to_instant(converter())

        if isinstance(value, bool):
            raise TypeError("boolean is not a timestamp")

        if isinstance(value, (int, float)):
            return _from_epoch(value)

        if isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            if text.lstrip("-").isdigit():
                return _from_epoch(int(text))
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            return to_instant(parsed)

        raise TypeError(f"unsupported timestamp type {type(value).__name__}")

    except (TypeError, ValueError, OverflowError, OSError) as e:
        logger.warning(
            "Unusable timestamp, treating as missing",
            extra={"raw_value": repr(value)[:100], "error": str(e)}
        )
        return None


def _field(record: Any, snake: str, camel: Optional[str] = None, default: Any = None) -> Any:
    """Read a field from a mapping or an object, by snake_case or camelCase name."""
    names = (snake, camel) if camel else (snake,)
    for name in names:
        if isinstance(record, Mapping):
            if name in record:
                return record[name]
        elif hasattr(record, name):
            return getattr(record, name)
    return default


def issue_from_record(record: Any) -> Issue:
    """
    Build a domain Issue from a raw store record.

    Works for ORM rows and for document-store dicts using camelCase keys.
    """
    timeline = _field(record, "timeline", default=None)
    escalated_to = _field(record, "escalated_to", "escalatedTo")
    return Issue(
        id=str(_field(record, "id", default="")),
        campus_id=str(_field(record, "campus_id", "campusId", default="")),
        severity=_field(record, "severity"),
        status=_field(record, "status"),
        created_at=to_instant(_field(record, "created_at", "createdAt")),
        resolved_at=to_instant(_field(record, "resolved_at", "resolvedAt")),
        sla_deadline=to_instant(_field(record, "sla_deadline", "slaDeadline")),
        sla_status=_field(record, "sla_status", "slaStatus"),
        title=_field(record, "title", default="") or "",
        description=_field(record, "description", default="") or "",
        reported_by=_field(record, "reported_by", "reportedBy", default=None) or "Anonymous User",
        timeline=list(timeline) if timeline else [],
        escalation_status=_field(record, "escalation_status", "escalationStatus"),
        escalation_level=_field(record, "escalation_level", "escalationLevel"),
        escalated_to=dict(escalated_to) if isinstance(escalated_to, Mapping) else None,
        escalated_at=to_instant(_field(record, "escalated_at", "escalatedAt")),
    )

"""UTC helpers shared by ingestion, aggregation and snapshots."""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Normalise a datetime to an aware UTC datetime.

    Naive values are taken to already be UTC, which is also how they come back
    from stores without timezone support.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)

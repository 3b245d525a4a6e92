from datetime import datetime, timezone


def utcnow() -> datetime:
    # Columns are naive UTC DateTime, like the rest of the schema
    return datetime.now(timezone.utc).replace(tzinfo=None)

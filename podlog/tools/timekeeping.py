from datetime import datetime, timezone


def date_now() -> datetime:
    # exec credential expiry timestamps are tz aware so we must be too
    return datetime.now(tz=timezone.utc)

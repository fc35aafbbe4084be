"""UTC timezone enforcement.

Sets the TZ environment variable to UTC and provides the naive-UTC clock used
for every persisted timestamp, so SQLite and PostgreSQL compare them the same way.
"""

import os
from datetime import datetime, timezone

# Set UTC timezone for the entire application
os.environ["TZ"] = "UTC"


def utcnow() -> datetime:
    """Return the current UTC time without tzinfo (database storage format)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

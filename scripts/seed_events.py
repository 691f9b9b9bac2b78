"""Log a handful of sample events into the configured store."""
from __future__ import annotations

from dotenv import load_dotenv

load_dotenv()

from auditlog import db, deps
from auditlog.config import get_settings

SAMPLE_EVENTS = [
    (1000, {"Username": "admin", "CurrentUserRoles": ["administrator"]}),
    (1002, {"Username": "editor", "Attempts": 3}),
    (2001, {"PostTitle": "Hello world", "PostID": 1, "Published": True}),
    (6007, {"OldValue": None, "NewValue": {"option": "siteurl"}}),
]


def main() -> None:
    settings = get_settings()
    print(f"Using database: {settings.database_url}")

    db.create_all()
    event_logger = deps.get_event_logger()
    try:
        for alert_id, data in SAMPLE_EVENTS:
            result = event_logger.log_event(alert_id, data)
            print(f"alert {alert_id}: {result.status} (occurrence {result.occurrence_id})")
    finally:
        deps.close_connections()
        db.close_engine()


if __name__ == "__main__":
    main()

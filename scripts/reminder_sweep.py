#!/usr/bin/env python3
"""
Reminder Sweep

Sends the 24 hour and 60 minute booking reminders from calendar state.
Schedule it every few minutes (cron, a platform scheduler, or a
Kubernetes CronJob). Each run only looks at events starting within a
couple of minutes of now + offset, so run it at least that often.

Usage:
    python scripts/reminder_sweep.py
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Load environment variables
from dotenv import load_dotenv
load_dotenv()

from app.config import settings
from app.core.scheduling import (
    BookingNotifier,
    CalendarServiceError,
    ReminderSweep,
    get_calendar_client,
)
from app.infra.notifications import get_notification_service
from app.safety import PIIRedactingFilter

logger = logging.getLogger("reminder_sweep")


async def main() -> int:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    for handler in logging.getLogger().handlers:
        handler.addFilter(PIIRedactingFilter())

    if not settings.messaging_enabled:
        logger.error("Messaging gateway not configured - nothing to send with")
        return 1

    calendar = get_calendar_client()
    messenger = get_notification_service()
    sweep = ReminderSweep(calendar, BookingNotifier(messenger))

    try:
        result = await sweep.run()
    except CalendarServiceError as e:
        logger.error(f"Reminder sweep failed: {e}")
        return 1
    finally:
        await calendar.close()
        await messenger.close()

    logger.info(
        f"Reminder sweep done: {result.checked} due, {result.sent} sent, "
        f"{len(result.skipped)} skipped"
    )
    return 0


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)

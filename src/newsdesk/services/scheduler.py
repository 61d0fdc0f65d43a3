import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)


def next_run_time(hour: int = 8, tz: str = "UTC", now: Optional[datetime] = None) -> datetime:
    zone = ZoneInfo(tz)
    now = (now or datetime.now(timezone.utc)).astimezone(zone)
    run = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if run <= now:
        run = (run + timedelta(days=1)).replace(hour=hour)
    return run


async def run_daily(
    job: Callable[[], Awaitable[None]],
    hour: int,
    tz: str,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    max_runs: Optional[int] = None,
) -> None:
    """
    Run `job` once a day at `hour` local time in `tz`.
    A failing job is logged and the loop keeps going.
    """
    runs = 0
    while max_runs is None or runs < max_runs:
        target = next_run_time(hour, tz)
        delay = (target - datetime.now(timezone.utc)).total_seconds()
        logger.info(f"Next scheduled run at {target.isoformat()}")
        await sleep(max(delay, 0.0))

        try:
            await job()
        except Exception as e:
            logger.exception(f"Scheduled job failed: {e}")
        runs += 1

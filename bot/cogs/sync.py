import logging
from typing import TYPE_CHECKING

import discord
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import settings
from db.store import store
from engine.matcher import ai_matcher
from engine.sheet import sheet_client

if TYPE_CHECKING:
    from bot.main import JourneyBot

log = logging.getLogger(__name__)


class SyncCog:
    def __init__(self, bot: "JourneyBot"):
        self.bot = bot
        self.scheduler = AsyncIOScheduler()
        self._last_health_alert = False

    async def start(self) -> None:
        await self._sync_job()

        self.scheduler.add_job(
            self._sync_job,
            IntervalTrigger(minutes=settings.sync_interval_minutes),
            id="sync",
            replace_existing=True,
        )

        self.scheduler.add_job(
            self._health_check_job,
            IntervalTrigger(hours=settings.health_check_interval_hours),
            id="health_check",
            replace_existing=True,
        )

        self.scheduler.start()
        log.info(f"Scheduler started, syncing every {settings.sync_interval_minutes}m")

    async def stop(self) -> None:
        self.scheduler.shutdown(wait=False)
        await sheet_client.close()
        await ai_matcher.close()

    async def _sync_job(self) -> None:
        try:
            listings = await store.list()
            log.info(f"Scheduled sync: {len(listings)} active listings")
        except Exception as e:
            log.exception(f"Scheduled sync failed: {e}")

    async def _health_check_job(self) -> None:
        log.info("Running health check")

        healthy = await sheet_client.health()
        if not healthy and not self._last_health_alert:
            await self._send_health_alert(
                "🔴 Listing sheet unreachable",
                "The listing sheet did not answer its health check. Serving cached listings.",
            )
            self._last_health_alert = True
        elif healthy:
            self._last_health_alert = False

    async def _send_health_alert(self, title: str, message: str) -> None:
        if not settings.discord_user_id:
            log.warning(f"{title}: {message}")
            return
        try:
            user = await self.bot.fetch_user(settings.discord_user_id)
            embed = discord.Embed(
                title=title,
                description=message,
                color=discord.Color.red(),
            )
            await user.send(embed=embed)
        except Exception as e:
            log.error(f"Failed to send health alert: {e}")

import asyncio
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import discord
from discord import app_commands

from bot.cogs.sync import SyncCog
from bot.commands.post import PostCommands
from bot.commands.tickets import TicketCommands
from config import settings
from db.cache import listing_cache

log_dir = Path("./logs")
log_dir.mkdir(exist_ok=True)

log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

logging.basicConfig(level=log_level, format=log_format)

file_handler = RotatingFileHandler(
    log_dir / "journeyconnect.log",
    maxBytes=10 * 1024 * 1024,
    backupCount=5,
    encoding="utf-8",
)
file_handler.setFormatter(logging.Formatter(log_format))
file_handler.setLevel(log_level)
logging.getLogger().addHandler(file_handler)

log = logging.getLogger(__name__)


class JourneyBot(discord.Client):
    def __init__(self):
        super().__init__(intents=discord.Intents.default())
        self.tree = app_commands.CommandTree(self)
        self.sync: SyncCog | None = None

    async def setup_hook(self) -> None:
        await listing_cache.connect()
        log.info(f"Listing cache ready at {listing_cache.db_path}")

        self.tree.add_command(TicketCommands(self))
        self.tree.add_command(PostCommands(self))

        self.sync = SyncCog(self)
        await self.sync.start()

        await self.tree.sync()
        log.info("Commands synced")

    async def on_ready(self) -> None:
        log.info(f"Logged in as {self.user}")

    async def close(self) -> None:
        if self.sync:
            await self.sync.stop()
        await listing_cache.close()
        await super().close()


async def main() -> None:
    bot = JourneyBot()
    async with bot:
        await bot.start(settings.discord_bot_token)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()

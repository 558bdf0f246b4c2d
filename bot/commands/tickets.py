from typing import TYPE_CHECKING

import discord
from discord import app_commands

from bot.render import listing_embed
from config import settings
from db.models import MatchStrength, SortKey, TicketType, TrainClass
from db.store import store
from engine.discovery import DiscoveryEngine
from engine.matcher import ai_matcher

if TYPE_CHECKING:
    from bot.main import JourneyBot


def viewer_id(user: discord.abc.User) -> str:
    return f"discord_{user.id}"


def parse_classes(raw: str | None) -> set[str]:
    if not raw:
        return set()
    valid = {c.value for c in TrainClass}
    return {c.strip().upper() for c in raw.split(",") if c.strip().upper() in valid}


@app_commands.guild_install()
@app_commands.allowed_contexts(guilds=True, dms=True, private_channels=True)
class TicketCommands(app_commands.Group):
    def __init__(self, bot: "JourneyBot"):
        super().__init__(name="tickets", description="Find and manage ticket listings")
        self.bot = bot

    @app_commands.command(name="search", description="Search open ticket listings")
    @app_commands.describe(
        query="Train name, number or station; smart search also understands phrases",
        smart="Also run AI matching on the query",
        origin="Boarding station",
        destination="Destination station",
        match="Route match strength to show",
        ticket_type="Offers or requests",
        classes="Comma-separated classes, e.g. 3A,SL",
        date="Travel date (YYYY-MM-DD)",
        sort="Result order",
        mine="Only my listings",
    )
    async def search(
        self,
        interaction: discord.Interaction,
        query: str | None = None,
        smart: bool = False,
        origin: str | None = None,
        destination: str | None = None,
        match: MatchStrength = MatchStrength.ALL,
        ticket_type: TicketType | None = None,
        classes: str | None = None,
        date: str | None = None,
        sort: SortKey = SortKey.DATE,
        mine: bool = False,
    ) -> None:
        await interaction.response.defer(ephemeral=True)

        engine = DiscoveryEngine(store, ai_matcher, viewer_id=viewer_id(interaction.user))
        await engine.refresh()

        if query:
            if smart:
                await engine.submit_search(query)
            else:
                engine.set_query(query)

        engine.criteria.route_from = (origin or "").strip()
        engine.criteria.route_to = (destination or "").strip()
        await engine.classify_route()

        engine.set_match_filter(match)
        engine.set_type(ticket_type)
        engine.criteria.classes = parse_classes(classes)
        engine.set_date(date)
        engine.set_sort(sort)
        engine.set_my_listings(mine)

        results = engine.results()
        if not results:
            await interaction.followup.send("No tickets found. Try adjusting your filters.")
            return

        shown = results[: settings.max_results]
        embeds = [listing_embed(t, engine.match_type(t.id)) for t in shown]
        header = f"Found {len(results)} tickets"
        if len(results) > len(shown):
            header += f", showing {len(shown)}"
        # Discord allows at most 10 embeds per message
        for start in range(0, len(embeds), 10):
            await interaction.followup.send(
                header if start == 0 else None, embeds=embeds[start : start + 10]
            )

    @app_commands.command(name="show", description="Show one listing with contact details")
    @app_commands.describe(listing_id="Listing ID")
    async def show(self, interaction: discord.Interaction, listing_id: str) -> None:
        await interaction.response.defer(ephemeral=True)

        listing = await store.get_by_id(listing_id)
        if not listing:
            await interaction.followup.send(f"Listing #{listing_id} not found")
            return

        await interaction.followup.send(embed=listing_embed(listing, reveal_contact=True))

    @app_commands.command(name="mine", description="List my active listings")
    async def mine(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)

        engine = DiscoveryEngine(store, ai_matcher, viewer_id=viewer_id(interaction.user))
        await engine.refresh()
        engine.set_my_listings(True)
        results = engine.results()
        if not results:
            await interaction.followup.send("You have no active listings")
            return

        lines = [
            f"#{t.id} [{t.type.value}] {t.train_number} {t.from_station} → {t.to_station} "
            f"on {t.date} ({t.class_type}, ₹{t.price:,.0f})"
            for t in results
        ]
        await interaction.followup.send("\n".join(lines))

    @app_commands.command(name="remove", description="Remove a listing (mark as sold)")
    @app_commands.describe(listing_id="Listing ID to remove")
    async def remove(self, interaction: discord.Interaction, listing_id: str) -> None:
        await interaction.response.defer(ephemeral=True)

        listing = await store.get_by_id(listing_id)
        if not listing:
            await interaction.followup.send(f"Listing #{listing_id} not found")
            return

        is_owner = listing.user_id == viewer_id(interaction.user)
        if not is_owner and interaction.user.id not in settings.admin_user_ids:
            await interaction.followup.send("Only the publisher or an admin can remove this listing")
            return

        if not await store.delete(listing_id):
            await interaction.followup.send(f"Could not remove listing #{listing_id}, try again later")
            return

        await interaction.followup.send(f"Listing #{listing_id} removed")

    @app_commands.command(name="refresh", description="Re-sync listings from the sheet")
    async def refresh(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)

        listings = await store.list()
        await interaction.followup.send(f"{len(listings)} active listings")

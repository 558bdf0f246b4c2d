import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands

from bot.commands.tickets import viewer_id
from bot.render import listing_embed
from db.models import TicketType, TrainClass
from db.store import store
from engine.matcher import ai_matcher
from engine.publish import ListingDraft, ListingValidationError, Publisher

if TYPE_CHECKING:
    from bot.main import JourneyBot

log = logging.getLogger(__name__)

publisher = Publisher(store, ai_matcher)


@app_commands.guild_install()
@app_commands.allowed_contexts(guilds=True, dms=True, private_channels=True)
class PostCommands(app_commands.Group):
    def __init__(self, bot: "JourneyBot"):
        super().__init__(name="post", description="Publish ticket offers and requests")
        self.bot = bot

    async def _publish(self, interaction: discord.Interaction, draft: ListingDraft, contact: str) -> None:
        draft = await publisher.autofill(draft)

        if draft.type == TicketType.REQUEST:
            similar = await publisher.similar_offers(draft)
            if similar:
                await interaction.followup.send(
                    f"{len(similar)} open offers already match your request",
                    embeds=[listing_embed(t) for t in similar[:10]],
                )

        try:
            listing, ok = await publisher.publish(
                draft,
                user_id=viewer_id(interaction.user),
                seller_name=interaction.user.display_name,
                user_contact=contact,
            )
        except ListingValidationError as e:
            await interaction.followup.send(f"❌ {e}")
            return

        if not ok:
            await interaction.followup.send("❌ The listing sheet did not accept the listing, try again later")
            return

        log.info(f"{interaction.user} published {listing.type.value} #{listing.id}")
        await interaction.followup.send(
            f"✅ Listing #{listing.id} published", embed=listing_embed(listing, reveal_contact=True)
        )

    @app_commands.command(name="offer", description="Offer a ticket you hold")
    @app_commands.describe(
        train_number="5-digit train number",
        date="Travel date (YYYY-MM-DD)",
        price="Asking price in ₹",
        contact="How buyers can reach you",
        class_type="Travel class",
        origin="Boarding station (filled from the schedule if empty)",
        destination="Destination station (filled from the schedule if empty)",
        berth="Berth type",
        comment="Short note, at most 10 words",
    )
    async def offer(
        self,
        interaction: discord.Interaction,
        train_number: str,
        date: str,
        price: float,
        contact: str,
        class_type: TrainClass = TrainClass.SL,
        origin: str | None = None,
        destination: str | None = None,
        berth: str | None = None,
        comment: str | None = None,
    ) -> None:
        await interaction.response.defer(ephemeral=True)

        draft = ListingDraft(
            type=TicketType.OFFER,
            train_number=train_number.strip(),
            from_station=origin or "",
            to_station=destination or "",
            date=date.strip(),
            class_type=class_type.value,
            berth_type=berth or "No Preference",
            price=price,
            comment=comment or "",
        )
        await self._publish(interaction, draft, contact)

    @app_commands.command(name="request", description="Ask for a ticket you need")
    @app_commands.describe(
        train_number="5-digit train number",
        date="Travel date (YYYY-MM-DD)",
        price="Budget in ₹",
        contact="How sellers can reach you",
        class_type="Travel class",
        origin="Boarding station",
        destination="Destination station",
        flexible_date="Dates up to 2 days away are fine",
        flexible_class="Any class is fine",
        comment="Short note, at most 10 words",
    )
    async def request(
        self,
        interaction: discord.Interaction,
        train_number: str,
        date: str,
        price: float,
        contact: str,
        class_type: TrainClass = TrainClass.SL,
        origin: str | None = None,
        destination: str | None = None,
        flexible_date: bool = False,
        flexible_class: bool = False,
        comment: str | None = None,
    ) -> None:
        await interaction.response.defer(ephemeral=True)

        draft = ListingDraft(
            type=TicketType.REQUEST,
            train_number=train_number.strip(),
            from_station=origin or "",
            to_station=destination or "",
            date=date.strip(),
            class_type=class_type.value,
            price=price,
            comment=comment or "",
            is_flexible_date=flexible_date,
            is_flexible_class=flexible_class,
        )
        await self._publish(interaction, draft, contact)

    @app_commands.command(name="parse", description="Publish a listing described in plain text")
    @app_commands.describe(
        text="e.g. 'Selling 2 3A tickets on 12951 Mumbai to Delhi 25 Dec for 1500'",
        contact="How others can reach you",
    )
    async def parse(self, interaction: discord.Interaction, text: str, contact: str) -> None:
        await interaction.response.defer(ephemeral=True)

        if not ai_matcher.enabled:
            await interaction.followup.send("AI parsing is not configured, use /post offer or /post request")
            return

        draft = await publisher.parse(text)
        if not draft:
            await interaction.followup.send("❌ Could not understand that listing, try the structured commands")
            return

        await self._publish(interaction, draft, contact)

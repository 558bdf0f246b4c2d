import discord

from db.models import Listing, MatchStrength, TicketType

MATCH_LABELS = {
    MatchStrength.EXACT: "Exact route match",
    MatchStrength.PARTIAL: "Route match",
}


def listing_embed(
    listing: Listing,
    match: MatchStrength | None = None,
    reveal_contact: bool = False,
) -> discord.Embed:
    is_request = listing.type == TicketType.REQUEST
    embed = discord.Embed(
        title=f"{listing.train_number} {listing.train_name}"[:256],
        description=f"{listing.from_station} → {listing.to_station}",
        color=discord.Color.gold() if is_request else discord.Color.green(),
    )
    embed.add_field(name="Date", value=listing.date or "?", inline=True)
    embed.add_field(
        name="Timing",
        value=f"{listing.departure_time} → {listing.arrival_time} ({listing.duration})",
        inline=True,
    )
    embed.add_field(name="Class", value=listing.class_type, inline=True)
    embed.add_field(name="Price", value=f"₹{listing.price:,.0f}", inline=True)
    embed.add_field(name="Type", value=listing.type.value.title(), inline=True)

    flexible = []
    if is_request and listing.is_flexible_date:
        flexible.append("date")
    if is_request and listing.is_flexible_class:
        flexible.append("class")
    if flexible:
        embed.add_field(name="Flexible", value=", ".join(flexible), inline=True)

    if match:
        embed.add_field(name="Match", value=MATCH_LABELS[match], inline=True)
    if listing.berth_type and listing.berth_type != "No Preference":
        embed.add_field(name="Berth", value=listing.berth_type, inline=True)
    if listing.comment:
        embed.add_field(name="Comment", value=listing.comment[:200], inline=False)
    if reveal_contact and listing.user_contact:
        embed.add_field(name="Contact", value=listing.user_contact, inline=False)

    embed.set_footer(text=f"#{listing.id} · {listing.seller_name}")
    return embed

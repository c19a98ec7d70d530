import logging
import os
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from db.database import db, ensure_user, transaction
from models.prize_pool import load_catalog, sync_catalog
from services import ledger
from services.balance import REASON_ADMIN_GRANT, Currency
from services.errors import GachaError
from services.formatting import format_currency

logger = logging.getLogger("aura.cogs.admin")

CURRENCY_CHOICES = [
    app_commands.Choice(name="Diamonds", value=Currency.DIAMONDS.value),
    app_commands.Choice(name="Tickets", value=Currency.TICKETS.value),
]


def catalog_path() -> str:
    return os.getenv("AURA_CATALOG_PATH", "data/catalog.json")


def reload_catalog_file(path: str, db_path: Optional[str] = None) -> str:
    catalog, warn = load_catalog(path)
    if warn:
        logger.warning("Catalog warnings:\n%s", warn)
    con = db(db_path)
    try:
        with transaction(con):
            sync_catalog(con, catalog)
    finally:
        con.close()
    msg = f"Catalog reloaded: {len(catalog.prizes)} prizes, {len(catalog.banners)} banners."
    if warn:
        msg += f"\n⚠️ {warn}"
    return msg


class Admin(commands.Cog):
    def __init__(self, bot: commands.Bot):
        self.bot = bot

    def owner_or_admin(self, inter: discord.Interaction) -> bool:
        app_owner_id = inter.client.application.owner.id if inter.client.application and inter.client.application.owner else None
        is_owner = (app_owner_id == inter.user.id)
        is_admin = any(r.permissions.administrator for r in getattr(inter.user, "roles", [])) if isinstance(inter.user, discord.Member) else False
        return is_owner or is_admin

    @app_commands.command(name="reload_catalog", description="Reload banners and prizes (owner/admin only)")
    async def reload_catalog(self, interaction: discord.Interaction):
        if not self.owner_or_admin(interaction):
            await interaction.response.send_message("Insufficient permissions.", ephemeral=True)
            return
        try:
            msg = reload_catalog_file(catalog_path())
        except GachaError as ex:
            logger.warning("Catalog reload failed: %s", ex)
            await interaction.response.send_message(ex.user_message, ephemeral=True)
            return
        await interaction.response.send_message(msg[:2000], ephemeral=True)

    @app_commands.command(name="grant", description="Credit currency to a user (owner/admin only)")
    @app_commands.choices(currency=CURRENCY_CHOICES)
    async def grant(
        self,
        interaction: discord.Interaction,
        member: discord.User,
        currency: app_commands.Choice[str],
        amount: app_commands.Range[int, 1, 1_000_000],
    ):
        if not self.owner_or_admin(interaction):
            await interaction.response.send_message("Insufficient permissions.", ephemeral=True)
            return
        ensure_user(member.id)
        con = db()
        try:
            with transaction(con):
                entry = ledger.credit(
                    con, member.id, currency.value, amount, REASON_ADMIN_GRANT, f"admin:{interaction.user.id}"
                )
        except GachaError as ex:
            await interaction.response.send_message(ex.user_message, ephemeral=True)
            return
        finally:
            con.close()
        logger.info("User %s granted %s %s to %s", interaction.user.id, amount, currency.value, member.id)
        await interaction.response.send_message(
            f"Granted {format_currency(amount, currency.value)} to {member.mention}. "
            f"New balance: {format_currency(entry.balance_after, entry.currency)}.",
            ephemeral=True,
        )


async def setup(bot: commands.Bot):
    await bot.add_cog(Admin(bot))

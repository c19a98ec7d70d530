import asyncio
import logging
import random
from typing import List

import discord
from discord import app_commands
from discord.ext import commands

from db.database import ensure_user
from services.balance import PULL_COUNT, Currency
from services.banners import get_banner, list_active
from services.draw_engine import DrawEngine, DrawResult, recent_pulls
from services.errors import GachaError, MisconfiguredPrizePool
from services.formatting import format_currency, format_percent, pull_line
from services.probability import Distribution, expected_counts, get_distribution
from services.rarity import Rarity

logger = logging.getLogger("aura.cogs.gacha")

PAYMENT_CHOICES = [
    app_commands.Choice(name="Diamonds 💎", value=Currency.DIAMONDS.value),
    app_commands.Choice(name="Tickets 🎟️", value=Currency.TICKETS.value),
]


def result_embed(result: DrawResult, banner_name: str) -> discord.Embed:
    best = result.best
    colour = best.rarity.color if best else Rarity.COMMON.color
    embed = discord.Embed(
        title=f"✨ Aura Zone x{len(result.pulls)} | {banner_name}",
        description="\n".join(
            pull_line(p.sequence_index, p.prize_name, p.rarity, p.was_forced) for p in result.pulls
        ),
        color=colour,
    )
    embed.add_field(name="Spent", value=format_currency(result.cost, result.currency), inline=True)
    embed.add_field(name="Balance", value=format_currency(result.new_balance, result.currency), inline=True)
    embed.add_field(name="Pity", value=str(result.pity_counter), inline=True)
    if result.completed_ten_draw_now:
        embed.set_footer(text="🏅 First 10x draw completed!")
    return embed


def rate_lines(distribution: Distribution) -> List[str]:
    """Tier rates, highest tier first, each followed by its prizes' own odds."""

    expected = expected_counts(distribution)
    lines = []
    for bucket in reversed(distribution.buckets):
        lines.append(
            f"{bucket.rarity.label} {format_percent(bucket.probability)} "
            f"(~{expected[bucket.rarity]:.2f} per x{PULL_COUNT})"
        )
        for entry in bucket.entries:
            odds = format_percent(distribution.item_probability(entry.prize_id))
            lines.append(f"- {entry.name} {odds}")
    return lines


class Gacha(commands.Cog):
    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.engine = DrawEngine(rng=random.SystemRandom())

    def banner_choices(self, current: str) -> List[app_commands.Choice[str]]:
        con = self.engine.connect()
        banners = list_active(con)
        con.close()
        current = current.lower()
        return [
            app_commands.Choice(name=b.name, value=b.id)
            for b in banners
            if current in b.name.lower() or current in b.id.lower()
        ][:25]

    @app_commands.command(name="banners", description="List the banners you can draw on right now")
    async def banners(self, interaction: discord.Interaction):
        con = self.engine.connect()
        banners = list_active(con)
        con.close()
        if not banners:
            await interaction.response.send_message("No banners are running right now.", ephemeral=True)
            return
        embed = discord.Embed(title="Aura Zone banners", color=0xA855F7)
        for b in banners:
            cost = format_currency(b.batch_cost(PULL_COUNT), b.currency_type)
            embed.add_field(
                name=f"{b.name} (`{b.id}`)",
                value=f"{b.description or '-'}\nx{PULL_COUNT}: {cost}",
                inline=False,
            )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @app_commands.command(name="rates", description="Show a banner's drop rates")
    @app_commands.describe(banner="Banner id")
    async def rates(self, interaction: discord.Interaction, banner: str):
        con = self.engine.connect()
        try:
            b = get_banner(con, banner)
            distribution = get_distribution(con, b.id)
        except MisconfiguredPrizePool as ex:
            logger.error("Rates unavailable: %s", ex)
            await interaction.response.send_message(ex.user_message, ephemeral=True)
            return
        except GachaError as ex:
            await interaction.response.send_message(ex.user_message, ephemeral=True)
            return
        finally:
            con.close()

        embed = discord.Embed(
            title=f"Rates | {b.name}", description="\n".join(rate_lines(distribution))[:4096], color=0xF59E0B
        )
        embed.set_footer(text=f"A draw is guaranteed SSR+ after {self.engine.pity.threshold} misses in a row.")
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @app_commands.command(name="aura_draw", description=f"Draw x{PULL_COUNT} on an Aura Zone banner")
    @app_commands.describe(banner="Banner id", payment="Currency to pay with")
    @app_commands.choices(payment=PAYMENT_CHOICES)
    async def aura_draw(
        self,
        interaction: discord.Interaction,
        banner: str,
        payment: app_commands.Choice[str],
    ):
        # the draw may wait on the write lock for longer than the interaction window
        await interaction.response.defer(ephemeral=True)
        ensure_user(interaction.user.id, self.engine.db_path)
        try:
            result = await asyncio.to_thread(
                self.engine.perform_draw, interaction.user.id, banner, payment.value
            )
        except GachaError as ex:
            await interaction.followup.send(ex.user_message, ephemeral=True)
            return

        con = self.engine.connect()
        banner_name = get_banner(con, result.banner_id).name
        con.close()
        await interaction.followup.send(embed=result_embed(result, banner_name), ephemeral=True)

    @app_commands.command(name="pulls", description="Show your most recent draws")
    async def pulls(self, interaction: discord.Interaction):
        con = self.engine.connect()
        rows = recent_pulls(con, interaction.user.id, limit=PULL_COUNT * 2)
        con.close()
        if not rows:
            await interaction.response.send_message("No draws yet. Try /aura_draw", ephemeral=True)
            return
        desc = "\n".join(
            pull_line(r["sequence_index"], r["prize_name"] or r["prize_id"], r["rarity"], bool(r["was_forced"]))
            for r in rows
        )
        emb = discord.Embed(title="Recent draws", description=desc, color=0x3B82F6)
        await interaction.response.send_message(embed=emb, ephemeral=True)

    @rates.autocomplete("banner")
    async def rates_banner_autocomplete(self, interaction: discord.Interaction, current: str):
        return self.banner_choices(current)

    @aura_draw.autocomplete("banner")
    async def draw_banner_autocomplete(self, interaction: discord.Interaction, current: str):
        return self.banner_choices(current)


async def setup(bot: commands.Bot):
    await bot.add_cog(Gacha(bot))

import discord
from discord import app_commands
from discord.ext import commands

from db.database import db, ensure_user, init_db, transaction
from services import ledger
from services.balance import REASON_STARTER, STARTER_DIAMONDS, STARTER_TICKETS, Currency
from services.errors import GachaError
from services.formatting import format_currency, format_delta
from services.pity import PityTracker, has_completed_ten_draw


def ledger_line(entry: ledger.LedgerEntry) -> str:
    return (
        f"<t:{entry.created_at}:R> {format_delta(entry.delta, entry.currency)} "
        f"→ {format_currency(entry.balance_after, entry.currency)} | {entry.reason}"
    )


def pity_line(tracker: PityTracker, banner_id: str, count: int) -> str:
    left = tracker.draws_until_guarantee(count)
    if left == 0:
        return f"`{banner_id}` pity {count}/{tracker.threshold}, next draw is SSR+"
    return f"`{banner_id}` pity {count}/{tracker.threshold}, SSR+ within {left + 1} draws"


def claim_starter(con, user_id: int) -> bool:
    """Credit the one-time starter grant; False if it was already claimed."""

    with transaction(con):
        cur = con.execute(
            "UPDATE users SET starter_claimed=1 WHERE user_id=? AND starter_claimed=0", (user_id,)
        )
        if cur.rowcount == 0:
            return False
        if STARTER_DIAMONDS > 0:
            ledger.credit(con, user_id, Currency.DIAMONDS, STARTER_DIAMONDS, REASON_STARTER)
        if STARTER_TICKETS > 0:
            ledger.credit(con, user_id, Currency.TICKETS, STARTER_TICKETS, REASON_STARTER)
    return True


class Core(commands.Cog):
    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.pity = PityTracker()
        init_db()

    @app_commands.command(name="start", description="Create your account and claim the starter grant")
    async def start(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True)
        ensure_user(interaction.user.id)
        con = db()
        try:
            claimed = claim_starter(con, interaction.user.id)
        except GachaError as ex:
            await interaction.followup.send(ex.user_message, ephemeral=True)
            return
        finally:
            con.close()

        if not claimed:
            await interaction.followup.send(
                "You have already started. Use /wallet to see your balances.", ephemeral=True
            )
            return
        await interaction.followup.send(
            f"Welcome! You received {format_currency(STARTER_DIAMONDS, Currency.DIAMONDS)} and "
            f"{format_currency(STARTER_TICKETS, Currency.TICKETS)}. Try /banners and /aura_draw.",
            ephemeral=True,
        )

    @app_commands.command(name="wallet", description="Show your balances and pity")
    async def wallet(self, interaction: discord.Interaction):
        ensure_user(interaction.user.id)
        con = db()
        diamonds = ledger.get_balance(con, interaction.user.id, Currency.DIAMONDS)
        tickets = ledger.get_balance(con, interaction.user.id, Currency.TICKETS)
        counters = self.pity.counters_for(con, interaction.user.id)
        milestone = has_completed_ten_draw(con, interaction.user.id)
        con.close()

        emb = discord.Embed(title="Your Wallet", color=0xFFE17A)
        emb.add_field(name="Diamonds", value=format_currency(diamonds, Currency.DIAMONDS), inline=True)
        emb.add_field(name="Tickets", value=format_currency(tickets, Currency.TICKETS), inline=True)
        emb.add_field(name="First 10x", value="✅" if milestone else "-", inline=True)
        if counters:
            emb.description = "\n".join(
                pity_line(self.pity, banner_id, count) for banner_id, count in counters.items()
            )
        await interaction.response.send_message(embed=emb, ephemeral=True)

    @app_commands.command(name="ledger", description="Show your recent currency movements")
    async def ledger_history(self, interaction: discord.Interaction):
        ensure_user(interaction.user.id)
        con = db()
        entries = ledger.history(con, interaction.user.id, limit=15)
        con.close()
        if not entries:
            await interaction.response.send_message("No transactions yet.", ephemeral=True)
            return
        emb = discord.Embed(
            title="Recent transactions",
            description="\n".join(ledger_line(e) for e in entries),
            color=0x3B82F6,
        )
        await interaction.response.send_message(embed=emb, ephemeral=True)


async def setup(bot: commands.Bot):
    await bot.add_cog(Core(bot))

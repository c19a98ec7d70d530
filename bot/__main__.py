import asyncio
import logging
import os
from dotenv import load_dotenv
import discord
from discord.ext import commands

load_dotenv()

from cogs.admin import catalog_path, reload_catalog_file  # noqa: E402
from db.database import init_db  # noqa: E402
from services.balance import PROBABILITY_EPSILON  # noqa: E402
from services.rarity import total_percentage  # noqa: E402

TOKEN = os.getenv("DISCORD_TOKEN")

logger = logging.getLogger("aura.bot")

intents = discord.Intents.default()
bot = commands.Bot(command_prefix="!", intents=intents)

INITIAL_COGS = [
    "cogs.core",
    "cogs.gacha",
    "cogs.admin",
]

@bot.event
async def on_ready():
    try:
        synced = await bot.tree.sync()
        logger.info("Synced %s slash commands", len(synced))
    except discord.HTTPException as e:
        logger.error("Slash sync error: %s", e)
    logger.info("Logged in as %s", bot.user)

async def load_cogs():
    for ext in INITIAL_COGS:
        try:
            await bot.load_extension(ext)
            logger.info("Loaded cog: %s", ext)
        except commands.ExtensionError as e:
            logger.exception("Failed to load cog %s: %s", ext, e)

def prepare_store():
    total = total_percentage()
    if abs(total - 100) > PROBABILITY_EPSILON:
        raise SystemExit(f"Rarity percentages sum to {total}, not 100")
    init_db()
    path = catalog_path()
    if os.path.exists(path):
        logger.info(reload_catalog_file(path))
    else:
        logger.warning("No catalog at %s; banners stay as they are in the database", path)

async def runner():
    prepare_store()
    async with bot:
        await load_cogs()
        await bot.start(TOKEN)

if __name__ == "__main__":
    discord.utils.setup_logging()
    if not TOKEN:
        raise SystemExit("Set DISCORD_TOKEN in the environment or in .env")
    asyncio.run(runner())

import logging
import os
from typing import Optional

import discord
from discord.ext import commands, tasks
from discord import app_commands

from streak_bot.db import ServerConfigStore, StreakStore
from streak_bot.embeds import (
    admin_help_embed,
    correct_embed,
    distribution_embed,
    help_embed,
    leaderboard_embed,
    loading_embed,
    maps_embed,
    round_embed,
    stats_embed,
    stopped_embed,
    wrong_embed,
)
from streak_bot.quiz.lifecycle import QuizEngine, StartResult
from streak_bot.quiz.manager import LocationResolver
from streak_bot.quiz.constants import MSG_ADMIN_ONLY, MSG_ALREADY_RUNNING
from streak_bot.quiz.maps import MAP_NAMES, add_map, delete_map, map_image, resolve_map_name
from streak_bot.quiz.session import GuessCorrect, GuessWrong, RoundStarted
from streak_bot.render.browser import BrowserPool
from streak_bot.render.panorama import PanoramaRenderer
from streak_bot.threads import PrivateThreadView, send_private_offer, sweep_quiz_threads
from .config import (
    ASSETS_DIR,
    LB_STREAK_PATH,
    LOG_LEVEL,
    PB_STREAK_PATH,
    SERVER_CONFIG_PATH,
    require_bot_token,
)

logger = logging.getLogger(__name__)

CATEGORY_NAME = "StreakBot"
CHANNEL_NAMES = ("create-quiz", "streakbot", "bot-admin")

intents = discord.Intents.default()
intents.message_content = True


class StreakBot(commands.Bot):
    async def close(self):
        await engine.close()
        await super().close()


bot = StreakBot(
    command_prefix="!",
    intents=intents,
    help_command=None,
)

server_configs = ServerConfigStore(SERVER_CONFIG_PATH)
streaks = StreakStore(PB_STREAK_PATH, LB_STREAK_PATH)
resolver = LocationResolver()
pool = BrowserPool()


async def deliver_round(channel_id: int, result: StartResult) -> None:
    """Post an auto-advanced round."""
    channel = bot.get_channel(channel_id)
    if channel is None:
        return
    await send_start_result(channel, result)


engine = QuizEngine(
    resolver,
    PanoramaRenderer(pool),
    streaks,
    on_round_ready=deliver_round,
)


# -----------------------------
# CHANNEL HELPERS
# -----------------------------
def get_server_config(guild: Optional[discord.Guild]) -> Optional[dict]:
    if guild is None:
        return None
    return server_configs.get(guild.id)


def is_quiz_channel(channel, quiz_id: int) -> bool:
    if channel.id == quiz_id:
        return True
    return isinstance(channel, discord.Thread) and channel.parent_id == quiz_id


def quiz_channel_only():
    async def predicate(ctx: commands.Context) -> bool:
        cfg = get_server_config(ctx.guild)
        return cfg is not None and is_quiz_channel(ctx.channel, cfg["quiz_id"])
    return commands.check(predicate)


def admin_channel_only():
    async def predicate(ctx: commands.Context) -> bool:
        cfg = get_server_config(ctx.guild)
        return cfg is not None and ctx.channel.id == cfg["admin_id"]
    return commands.check(predicate)


async def send_start_result(channel: discord.abc.Messageable, result: StartResult) -> None:
    if isinstance(result, RoundStarted):
        embed, file = round_embed(result)
        await channel.send(embed=embed, file=file)
    elif not result.cancelled:
        await channel.send(result.message)


# -----------------------------
# BOT EVENTS
# -----------------------------
@bot.event
async def setup_hook():
    bot.add_view(PrivateThreadView(server_configs))
    cleanup_threads.start()


@bot.event
async def on_ready():
    print(f"Logged in as {bot.user} (ID: {bot.user.id})")

    try:
        synced = await bot.tree.sync()
        print(f"✅ Synced {len(synced)} app commands.")
    except discord.HTTPException as e:
        print(f"❌ Error syncing app commands: {e}")

    # Warm up the browser and the location caches
    if await pool.acquire() is None:
        print("❌ Browser failed to start, will retry on first quiz")
    await resolver.preload(MAP_NAMES)
    print("✅ Resources initialized and ready for fast quiz generation")


@bot.event
async def on_command_error(ctx: commands.Context, error: commands.CommandError):
    if isinstance(error, (commands.CheckFailure, commands.CommandNotFound)):
        return
    logger.error("Command %s failed: %s", ctx.command, error, exc_info=error)


@tasks.loop(hours=6)
async def cleanup_threads():
    deleted = await sweep_quiz_threads(bot, server_configs)
    if deleted:
        logger.info("Removed %d inactive quiz threads", deleted)


@cleanup_threads.before_loop
async def before_cleanup_threads():
    await bot.wait_until_ready()


# -----------------------------
# SLASH COMMANDS
# -----------------------------
@bot.tree.command(name="setup", description="Choose the StreakBot channels for this server.")
@app_commands.default_permissions(manage_guild=True)
async def setup(
    interaction: discord.Interaction,
    create_quiz_channel: discord.TextChannel,
    quiz_channel: discord.TextChannel,
    admin_channel: discord.TextChannel,
):
    if interaction.guild is None:
        await interaction.response.send_message(
            "This command can only be used in a server.",
            ephemeral=True,
        )
        return

    server_configs.set(
        interaction.guild.id,
        create_quiz_id=create_quiz_channel.id,
        quiz_id=quiz_channel.id,
        admin_id=admin_channel.id,
    )
    await interaction.response.send_message("Finished setting up StreakBot!", ephemeral=True)


@bot.tree.command(name="create_channels", description="Create the StreakBot category and channels.")
@app_commands.default_permissions(manage_channels=True)
async def create_channels(interaction: discord.Interaction):
    if interaction.guild is None:
        await interaction.response.send_message(
            "This command can only be used in a server.",
            ephemeral=True,
        )
        return

    await interaction.response.defer(ephemeral=True)
    try:
        category = await interaction.guild.create_category(CATEGORY_NAME)
        for name in CHANNEL_NAMES:
            await interaction.guild.create_text_channel(name, category=category)
    except discord.HTTPException as e:
        logger.error("Failed to create channels in guild %s: %s", interaction.guild.id, e)
        await interaction.followup.send("❌ Failed to create the channels. Check my permissions.", ephemeral=True)
        return

    await interaction.followup.send(
        "Finished creating the channels! Run `/setup` to choose them.",
        ephemeral=True,
    )


def in_admin_channel(interaction: discord.Interaction) -> bool:
    cfg = get_server_config(interaction.guild)
    return cfg is not None and interaction.channel_id == cfg["admin_id"]


@bot.tree.command(name="add_map", description="Add a map to the quiz.")
@app_commands.describe(
    name="Map name",
    aliases="Comma-separated aliases",
    distribution="Image of the location distribution",
    slug="Catalog slug, derived from the name when left empty",
)
async def add_map_command(
    interaction: discord.Interaction,
    name: str,
    aliases: str,
    distribution: Optional[discord.Attachment] = None,
    slug: Optional[str] = None,
):
    if not in_admin_channel(interaction):
        await interaction.response.send_message(MSG_ADMIN_ONLY, ephemeral=True)
        return

    await interaction.response.defer(ephemeral=True)

    filename = None
    if distribution is not None:
        filename = os.path.basename(distribution.filename)
        os.makedirs(ASSETS_DIR, exist_ok=True)
        try:
            await distribution.save(os.path.join(ASSETS_DIR, filename))
        except (discord.HTTPException, OSError) as e:
            logger.error("Failed to save distribution image %s: %s", filename, e)
            await interaction.followup.send("❌ Failed to save the distribution image.", ephemeral=True)
            return

    try:
        added = add_map(name, aliases.split(","), slug=slug, distribution=filename)
    except ValueError as e:
        await interaction.followup.send(f"❌ {e}", ephemeral=True)
        return

    await interaction.followup.send(f'Finished adding map "{added}"!', ephemeral=True)


@bot.tree.command(name="delete_map", description="Delete a map from the quiz.")
@app_commands.describe(name="Map name or alias")
async def delete_map_command(interaction: discord.Interaction, name: str):
    if not in_admin_channel(interaction):
        await interaction.response.send_message(MSG_ADMIN_ONLY, ephemeral=True)
        return

    deleted = delete_map(name)
    if deleted is None:
        await interaction.response.send_message(f'No map found named "{name}".', ephemeral=True)
        return

    await interaction.response.send_message(f'Deleted map "{deleted}".', ephemeral=True)


# -----------------------------
# PLAYER COMMANDS
# -----------------------------
@bot.command(name="play")
@quiz_channel_only()
async def play(ctx: commands.Context, *, map_name: Optional[str] = None):
    session = engine.get_session(ctx.channel.id)
    if session is not None and session.busy:
        await ctx.reply(MSG_ALREADY_RUNNING)
        return

    loading = await ctx.send(embed=loading_embed())
    try:
        result = await engine.start_round(ctx.channel.id, map_name, ctx.author.id)
    finally:
        try:
            await loading.delete()
        except discord.HTTPException as e:
            logger.warning("Couldn't delete loading message: %s", e)

    await send_start_result(ctx.channel, result)


@bot.command(name="g")
@quiz_channel_only()
async def guess(ctx: commands.Context, *, country: str = ""):
    result = engine.submit_guess(ctx.channel.id, ctx.author.id, ctx.author.name, country)

    if isinstance(result, GuessCorrect):
        await ctx.reply(embed=correct_embed(result))
    elif isinstance(result, GuessWrong):
        await ctx.reply(embed=wrong_embed(result))


@bot.command(name="stop")
@quiz_channel_only()
async def stop(ctx: commands.Context):
    result = engine.stop_round(ctx.channel.id)
    if result.ok:
        await ctx.reply(embed=stopped_embed(result))
    else:
        await ctx.reply(result.message)


@bot.command(name="maps")
@quiz_channel_only()
async def list_maps(ctx: commands.Context):
    await ctx.send(embed=maps_embed(engine.map_names))


@bot.command(name="help")
@quiz_channel_only()
async def show_help(ctx: commands.Context):
    await ctx.send(embed=help_embed())


@bot.command(name="leaderboard")
@quiz_channel_only()
async def leaderboard(ctx: commands.Context, *, map_name: str = ""):
    result = engine.get_leaderboard(map_name)
    if not result.ok:
        await ctx.reply(result.message)
        return

    if not result.rows:
        await ctx.send(f'No leaderboard data for map "{result.map_name}" yet. Be the first to set a record!')
        return

    await ctx.send(embed=leaderboard_embed(result.map_name, list(result.rows)))


@bot.command(name="distribution", aliases=["map", "locs", "locations"])
@quiz_channel_only()
async def distribution(ctx: commands.Context, *, map_name: str = ""):
    filename = map_image(map_name)
    if filename is None:
        await ctx.reply(f"❌ Unknown map or no distribution image for `{map_name}`. Use `!maps` to see the list.")
        return

    path = os.path.join(ASSETS_DIR, filename)
    if not os.path.exists(path):
        logger.warning("Distribution image %s is missing", path)
        await ctx.reply("❌ Image file not found.")
        return

    await ctx.send(
        embed=distribution_embed(resolve_map_name(map_name), filename),
        file=discord.File(path, filename=filename),
    )


@bot.command(name="stats")
@quiz_channel_only()
async def stats(ctx: commands.Context, *, target: str = ""):
    user_id, username = ctx.author.id, ctx.author.name

    if ctx.message.mentions:
        member = ctx.message.mentions[0]
        user_id, username = member.id, member.name
    elif target:
        found = streaks.find_user_by_name(target)
        if found is None:
            await ctx.reply(f'User "{target}" not found in stats database')
            return
        user_id, username = found

    records = engine.get_personal_stats(user_id)
    if not records:
        await ctx.reply(f"{username} doesn't have a streak yet")
        return

    await ctx.reply(embed=stats_embed(username, records))


@bot.command(name="invite")
@quiz_channel_only()
async def invite(ctx: commands.Context, member: discord.Member):
    if not isinstance(ctx.channel, discord.Thread):
        await ctx.reply("❌ This command can only be used inside a thread.")
        return
    try:
        await ctx.channel.add_user(member)
        await ctx.reply(f"✅ Successfully invited {member.name} to the thread.")
    except discord.HTTPException:
        logger.exception("Error inviting user %s", member.id)
        await ctx.reply("❌ Failed to invite the user. Make sure I have the correct permissions.")


@bot.command(name="kick")
@quiz_channel_only()
async def kick(ctx: commands.Context, member: discord.Member):
    if not isinstance(ctx.channel, discord.Thread):
        await ctx.reply("❌ This command can only be used inside a thread.")
        return
    try:
        await ctx.channel.remove_user(member)
        await ctx.reply(f"✅ Successfully kicked {member.name} from the thread.")
    except discord.HTTPException:
        logger.exception("Error kicking user %s", member.id)
        await ctx.reply("❌ Failed to kick the user. Make sure I have the correct permissions.")


# -----------------------------
# ADMIN COMMANDS
# -----------------------------
@bot.command(name="private_msg")
@admin_channel_only()
async def private_msg(ctx: commands.Context):
    if await send_private_offer(bot, server_configs, ctx.guild.id):
        await ctx.reply("Private thread creation message sent to the quiz channel!")
    else:
        await ctx.reply("Create-quiz channel not found. Run `/setup` first.")


@bot.command(name="help_admin")
@admin_channel_only()
async def help_admin(ctx: commands.Context):
    await ctx.send(embed=admin_help_embed())


# -----------------------------
# ENTRY POINT
# -----------------------------
def main():
    token = require_bot_token()
    bot.run(token, log_level=logging.getLevelName(LOG_LEVEL), root_logger=True)


if __name__ == "__main__":
    main()

# streak_bot/embeds.py

import io
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import discord

from streak_bot.db import LeaderboardEntry, PersonalBest
from streak_bot.quiz.maps import street_view_link
from streak_bot.quiz.session import GuessCorrect, GuessWrong, RoundStarted, RoundStopped
from streak_bot.utils.countries import country_flag

BLUE = 0x3498DB
GREEN = 0x2ECC71
RED = 0xE74C3C
ORANGE = 0xF39C12
GOLD = 0xF1C40F
PURPLE = 0x9B59B6

IMAGE_NAME = "quiz_location.jpg"


def format_time(milliseconds: float) -> str:
    """MM:SS.cc"""
    milliseconds = max(0, int(milliseconds))
    total_seconds = milliseconds // 1000
    minutes = total_seconds // 60
    seconds = total_seconds % 60
    centis = (milliseconds % 1000) // 10
    return f"{minutes:02d}:{seconds:02d}.{centis:02d}"


def format_day(timestamp: Optional[float] = None) -> str:
    moment = datetime.now(timezone.utc) if timestamp is None else datetime.fromtimestamp(timestamp, timezone.utc)
    return moment.strftime("%Y-%m-%d")


def _location_field(embed: discord.Embed, location: Optional[dict], label: str) -> None:
    if not location:
        return
    link = street_view_link(location["lat"], location["lng"])
    embed.add_field(name="Exact Location", value=f"[{label}]({link})", inline=False)


def loading_embed() -> discord.Embed:
    return discord.Embed(
        title="🌍 Loading Quiz...",
        description="Preparing your challenge, please wait...",
        color=BLUE,
    )


def round_embed(result: RoundStarted) -> Tuple[discord.Embed, discord.File]:
    session = result.session
    file = discord.File(io.BytesIO(result.image), filename=IMAGE_NAME)
    embed = discord.Embed(
        title=f"🌍 Country streak – {session.map_name}",
        description="In which country is this location? Use `!g <country>` to guess!",
        color=BLUE,
    )
    embed.set_image(url=f"attachment://{IMAGE_NAME}")
    embed.set_footer(text=f"Map: {session.map_name} | Current Streak: {session.current_streak}")
    return embed, file


def correct_embed(result: GuessCorrect) -> discord.Embed:
    session = result.session
    flag = country_flag(session.correct_country)
    embed = discord.Embed(
        title=f"{flag} Correct!".strip(),
        description=f"You guessed it right! The location is in **{session.correct_country}**.",
        color=GREEN,
    )
    embed.add_field(name="Subdivision", value=f"**{session.correct_subdivision}**", inline=True)
    embed.add_field(name="Time This Round", value=format_time(result.elapsed), inline=True)
    embed.add_field(name="Average Time", value=format_time(result.average_time), inline=True)
    embed.add_field(name="Current Streak", value=str(result.streak), inline=True)
    _location_field(embed, session.location, "Click here to view on Street View")
    return embed


def wrong_embed(result: GuessWrong) -> discord.Embed:
    session = result.session
    flag = country_flag(session.correct_country)
    participants = ", ".join(p.username for p in session.participants) or "None"
    embed = discord.Embed(
        title="❌ Game Over!",
        description=f"Wrong guess! The correct answer was **{session.correct_country}** {flag}.",
        color=RED,
    )
    embed.add_field(name="Subdivision", value=f"**{session.correct_subdivision}**", inline=True)
    embed.add_field(name="Time This Round", value=format_time(result.elapsed), inline=True)
    embed.add_field(name="Average Time", value=format_time(session.average_time), inline=True)
    embed.add_field(name="Final Streak", value=str(session.current_streak), inline=True)
    embed.add_field(name="Personal Best", value=str(result.personal_best), inline=True)
    embed.add_field(name="Participants", value=participants, inline=False)
    _location_field(embed, session.location, "Click here to view on Street View")
    return embed


def stopped_embed(result: RoundStopped) -> discord.Embed:
    session = result.session
    embed = discord.Embed(
        title="🛑 Game Stopped",
        description="The current game has been stopped manually.",
        color=ORANGE,
    )
    embed.add_field(name="Final Streak", value=str(session.current_streak), inline=True)
    _location_field(embed, session.location, "View on Street View")
    return embed


def leaderboard_embed(map_name: str, rows: List[LeaderboardEntry]) -> discord.Embed:
    medals = {0: "🥇", 1: "🥈", 2: "🥉"}
    lines = []
    for idx, entry in enumerate(rows):
        medal = medals.get(idx, f"{idx + 1}.")
        lines.append(
            f"{medal} **{entry.username}** - Streak: {entry.streak} | "
            f"Average Time: {format_time(entry.average_time)} | Date: {format_day(entry.last_update)}"
        )

    embed = discord.Embed(
        title=f"🏆 {map_name} - Leaderboard",
        description="\n".join(lines),
        color=GOLD,
    )
    embed.set_footer(text=f"Updated: {format_day()}")
    return embed


def stats_embed(username: str, stats: Dict[str, Tuple[PersonalBest, Optional[int]]]) -> discord.Embed:
    blocks = []
    for map_name, (record, rank) in stats.items():
        position = f"#{rank}" if rank else "not ranked"
        blocks.append(
            f"**{map_name}**\n"
            f"Best Streak: {record.streak} | Time: {format_time(record.average_time)} | "
            f"Rank: {position} | Date: {format_day(record.last_update)}"
        )

    return discord.Embed(
        title=f"📊 Stats for {username}",
        description="\n\n".join(blocks),
        color=PURPLE,
    )


def maps_embed(map_names: List[str]) -> discord.Embed:
    return discord.Embed(title="Available Maps", description="\n".join(map_names), color=BLUE)


def distribution_embed(map_name: str, filename: str) -> discord.Embed:
    embed = discord.Embed(title=f"Location distribution – {map_name}", color=GREEN)
    embed.set_image(url=f"attachment://{filename}")
    return embed


def help_embed() -> discord.Embed:
    embed = discord.Embed(
        title="Bot Commands",
        description="Here are the available commands:",
        color=BLUE,
    )
    for name, value in (
        ("!help", "Show the help message"),
        ("!play", "Start a new quiz with a random map"),
        ("!play <map>", "Start a new quiz with the specified map"),
        ("!g <country>", "Submit your guess for the current quiz"),
        ("!stop", "Stop the current quiz"),
        ("!maps", "Show all available maps"),
        ("!distribution <map>", "Show where the locations of a map are *(also !map, !locs, !locations)*"),
        ("!stats [user]", "Show personal stats and records"),
        ("!leaderboard <map>", "Show the leaderboard for a specific map"),
        ("!invite @<user>", "Invite a user to your private thread *(only works in threads)*"),
        ("!kick @<user>", "Kick a user from your private thread *(only works in threads)*"),
    ):
        embed.add_field(name=name, value=value, inline=False)
    return embed


def admin_help_embed() -> discord.Embed:
    embed = discord.Embed(
        title="Administrator bot commands",
        description="Here are all the available admin commands",
        color=BLUE,
    )
    embed.add_field(name="!help_admin", value="Show the admin help message", inline=False)
    embed.add_field(name="!private_msg", value="Create an announcement message to create private quizzes", inline=False)
    embed.add_field(name="/add_map", value="Add a map with its aliases and an optional distribution image", inline=False)
    embed.add_field(name="/delete_map", value="Delete a map by name or alias", inline=False)
    embed.add_field(name="/create_channels", value="Create the StreakBot category and its channels", inline=False)
    return embed


def private_offer_embed() -> discord.Embed:
    embed = discord.Embed(
        title="🌍 Start Your Private Session",
        description=(
            "**Play uninterrupted, at your own pace.**\n"
            "Create a private thread just for you, perfect for solo challenges or games with friends."
        ),
        color=BLUE,
    )
    embed.add_field(
        name="👥 Multiplayer Control",
        value="Use `!invite @<user>` to invite friends, and `!kick @<user>` to remove them from your thread.",
        inline=False,
    )
    embed.set_footer(text="Private threads auto-clean after inactivity.")
    return embed


def thread_welcome_embed() -> discord.Embed:
    embed = discord.Embed(
        title="🌍 Welcome to Your Private Session!",
        description=(
            "This is a private thread where you can play without interruptions. "
            "You can invite others using `!invite @<user>`."
        ),
        color=BLUE,
    )
    embed.add_field(name="Starting a Game", value="Use `!play <map>` to begin", inline=False)
    embed.add_field(name="Inviting Others", value="Use `!invite @<user>` to add friends", inline=False)
    embed.add_field(name="Kicking Users", value="Use `!kick @<user>` to kick the user", inline=False)
    return embed

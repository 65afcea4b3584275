# streak_bot/threads.py
"""
Private play threads.

- A persistent button in the create-quiz channel opens a private thread
  under the quiz channel for the user who clicked it.
- Threads with no message for INACTIVITY_LIMIT are deleted by a periodic sweep.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import discord

from streak_bot.db import ServerConfigStore
from streak_bot.embeds import private_offer_embed, thread_welcome_embed

logger = logging.getLogger(__name__)

CREATE_THREAD_ID = "create_private_thread"
INACTIVITY_LIMIT = timedelta(hours=24)


async def last_activity(thread: discord.Thread) -> datetime:
    async for message in thread.history(limit=1):
        return message.created_at
    return thread.created_at or datetime.now(timezone.utc)


async def delete_if_inactive(thread: discord.Thread, now: Optional[datetime] = None) -> bool:
    now = now or datetime.now(timezone.utc)
    if now - await last_activity(thread) < INACTIVITY_LIMIT:
        return False
    await thread.delete(reason="Thread inactive for over 24h")
    logger.info("Deleted inactive thread: %s", thread.name)
    return True


async def sweep_quiz_threads(client: discord.Client, configs: ServerConfigStore) -> int:
    """Delete inactive threads, active and archived, under every quiz channel."""
    deleted = 0
    for guild_id, cfg in configs.items():
        channel = client.get_channel(cfg["quiz_id"])
        if not isinstance(channel, discord.TextChannel):
            logger.warning("Quiz channel %s of guild %s not found", cfg["quiz_id"], guild_id)
            continue

        threads = list(channel.threads)
        try:
            async for archived in channel.archived_threads(private=True, joined=True):
                threads.append(archived)
        except discord.HTTPException as e:
            logger.warning("Could not list archived threads of %s: %s", channel.id, e)

        for thread in threads:
            try:
                if await delete_if_inactive(thread):
                    deleted += 1
            except discord.HTTPException as e:
                logger.error("Error checking thread %s: %s", thread.id, e)
    return deleted


class PrivateThreadView(discord.ui.View):
    """Persistent: registered once at startup, survives restarts."""

    def __init__(self, configs: ServerConfigStore):
        super().__init__(timeout=None)
        self.configs = configs

    @discord.ui.button(
        label="Create Private Quiz Thread",
        style=discord.ButtonStyle.primary,
        emoji="🎮",
        custom_id=CREATE_THREAD_ID,
    )
    async def create_thread(self, interaction: discord.Interaction, button: discord.ui.Button):
        await create_private_thread(interaction, self.configs)


async def create_private_thread(interaction: discord.Interaction, configs: ServerConfigStore) -> None:
    await interaction.response.defer(ephemeral=True)

    cfg = configs.get(interaction.guild_id) if interaction.guild_id else None
    quiz_channel = interaction.client.get_channel(cfg["quiz_id"]) if cfg else None
    if not isinstance(quiz_channel, discord.TextChannel):
        await interaction.followup.send("Quiz channel not found!", ephemeral=True)
        return

    user = interaction.user
    try:
        thread = await quiz_channel.create_thread(
            name=f"🏁 Private Quiz - {user.name}",
            type=discord.ChannelType.private_thread,
            reason=f"Private session for {user.name}",
        )
        await thread.add_user(user)

        admin_channel = interaction.client.get_channel(cfg["admin_id"])
        if isinstance(admin_channel, discord.TextChannel):
            await admin_channel.send(
                f"🧵 A new private thread was created by {user.mention}!\n"
                f"Join it here: <{thread.jump_url}>"
            )

        await thread.send(embed=thread_welcome_embed())
    except discord.HTTPException:
        logger.exception("Error creating thread for %s", user.id)
        await interaction.followup.send(
            "There was an error creating your private thread. Please try again later.",
            ephemeral=True,
        )
        return

    await interaction.followup.send(
        f"Your private quiz thread has been created! [Join thread]({thread.jump_url})",
        ephemeral=True,
    )


async def send_private_offer(client: discord.Client, configs: ServerConfigStore, guild_id: int) -> bool:
    cfg = configs.get(guild_id)
    channel = client.get_channel(cfg["create_quiz_id"]) if cfg else None
    if not isinstance(channel, discord.TextChannel):
        logger.error("Create-quiz channel not found for guild %s", guild_id)
        return False

    await channel.send(embed=private_offer_embed(), view=PrivateThreadView(configs))
    logger.info("Private thread creation message sent")
    return True

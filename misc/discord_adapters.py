from __future__ import annotations

import asyncio

import discord

from archive.errors import DeliveryFailure
from archive.session_manager import InboundEvent


def event_from_message(message: discord.Message) -> InboundEvent:
    created = getattr(message, "created_at", None)
    return InboundEvent(
        author_id=int(message.author.id),
        channel_id=int(message.channel.id),
        event_id=int(message.id),
        text=message.content or "",
        attachment_urls=[str(a.url) for a in (message.attachments or []) if getattr(a, "url", None)],
        created_at=int(created.timestamp()) if created is not None else 0,
    )


async def resolve_channel(bot, channel_id: int):
    channel = bot.get_channel(int(channel_id))
    if channel is not None:
        return channel
    try:
        return await bot.fetch_channel(int(channel_id))
    except (discord.NotFound, discord.Forbidden, discord.HTTPException) as e:
        print(f"[Discord] Could not fetch channel {channel_id}: {e}")
        return None


class DiscordEventSource:
    """Reads archive candidates back out of Discord and leaves reaction markers on them."""

    def __init__(self, *, bot) -> None:
        self.bot = bot

    async def history_before(self, channel_id: int, event_id: int, limit: int) -> list[InboundEvent]:
        channel = await resolve_channel(self.bot, channel_id)
        if channel is None or not hasattr(channel, "history"):
            return []
        out: list[InboundEvent] = []
        try:
            async for msg in channel.history(limit=max(1, int(limit)), before=discord.Object(id=int(event_id))):
                out.append(event_from_message(msg))
        except (discord.Forbidden, discord.HTTPException) as e:
            print(f"[Discord] history fetch failed channel={channel_id} before={event_id}: {e}")
        return out

    async def fetch_event(self, channel_id: int, event_id: int) -> InboundEvent | None:
        channel = await resolve_channel(self.bot, channel_id)
        if channel is None or not hasattr(channel, "fetch_message"):
            return None
        try:
            msg = await channel.fetch_message(int(event_id))
        except (discord.NotFound, discord.Forbidden, discord.HTTPException) as e:
            print(f"[Discord] fetch_message failed channel={channel_id} message={event_id}: {e}")
            return None
        return event_from_message(msg)

    async def mark(self, channel_id: int, event_id: int, marker: str) -> None:
        channel = await resolve_channel(self.bot, channel_id)
        if channel is None or not hasattr(channel, "get_partial_message"):
            return
        try:
            await channel.get_partial_message(int(event_id)).add_reaction(marker)
        except (discord.NotFound, discord.Forbidden, discord.HTTPException) as e:
            print(f"[Discord] react {marker} failed channel={channel_id} message={event_id}: {e}")

    def link(self, channel_id: int, event_id: int) -> str:
        channel = self.bot.get_channel(int(channel_id))
        guild = getattr(channel, "guild", None)
        if guild is None:
            return f"<#{int(channel_id)}> message `{int(event_id)}`"
        return f"https://discord.com/channels/{int(guild.id)}/{int(channel_id)}/{int(event_id)}"


class ChannelSender:
    """Plain text delivery to a channel id; raises DeliveryFailure instead of discord errors."""

    def __init__(self, *, bot) -> None:
        self.bot = bot

    async def send(self, channel_id: int, text: str) -> None:
        channel = await resolve_channel(self.bot, channel_id)
        if channel is None or not hasattr(channel, "send"):
            raise DeliveryFailure(f"Channel {channel_id} not found or not a text channel")
        try:
            await channel.send(text)
        except (discord.Forbidden, discord.HTTPException, OSError, asyncio.TimeoutError) as e:
            raise DeliveryFailure(f"Send to channel {channel_id} failed: {e}") from e

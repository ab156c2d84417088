from __future__ import annotations

import discord


def message_in_archive_channels(message: discord.Message, archive_channel_ids: set[int]) -> bool:
    # DMs never carry archive posts.
    if getattr(message, "guild", None) is None:
        return False
    if not archive_channel_ids:
        return True

    channel_id = int(getattr(message.channel, "id", 0) or 0)
    if channel_id in archive_channel_ids:
        return True
    # thread: allow if parent is watched
    if isinstance(message.channel, discord.Thread) and message.channel.parent:
        return int(message.channel.parent.id) in archive_channel_ids
    return False


def can_resolve_archive(user, *, admin_role_id: int = 0, owner_user_ids: set[int] | None = None) -> bool:
    """Single authorization check for archive prompts, the day modal and archive commands."""
    if user is None:
        return False
    user_id = int(getattr(user, "id", 0) or 0)
    if owner_user_ids and user_id in owner_user_ids:
        return True

    perms = getattr(user, "guild_permissions", None)
    if perms is not None and (getattr(perms, "manage_guild", False) or getattr(perms, "administrator", False)):
        return True

    if admin_role_id:
        for role in getattr(user, "roles", None) or []:
            if int(getattr(role, "id", 0) or 0) == int(admin_role_id):
                return True
    return False

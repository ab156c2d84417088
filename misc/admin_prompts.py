from __future__ import annotations

from typing import Any, Callable

import discord

from archive.custom_ids import (
    ACTION_ADD,
    ACTION_CONFIRM,
    ACTION_FORCE,
    ACTION_IGNORE,
    ACTION_SUBMIT_DAY,
    DAY_INPUT_ID,
    NAMESPACE_ARCHIVE,
    PromptControl,
    archive_modal_id,
    decode_id,
    int_arg,
)
from misc.discord_adapters import resolve_channel
from misc.discord_gates import can_resolve_archive


_BUTTON_STYLES = {
    "primary": discord.ButtonStyle.primary,
    "secondary": discord.ButtonStyle.secondary,
    "success": discord.ButtonStyle.success,
    "danger": discord.ButtonStyle.danger,
}


def build_prompt_view(controls: list[PromptControl]) -> discord.ui.View:
    # Clicks are routed by custom id in on_interaction, so buttons keep working after a restart.
    class ArchivePromptView(discord.ui.View):
        def __init__(self):
            super().__init__(timeout=None)
            for c in controls:
                self.add_item(
                    discord.ui.Button(
                        label=c.label[:80],
                        style=_BUTTON_STYLES.get(c.style, discord.ButtonStyle.secondary),
                        custom_id=c.custom_id,
                    )
                )

    return ArchivePromptView()


def build_day_modal(*, anchor_ref: int, channel_id: int, title: str, label: str, timeout: float) -> discord.ui.Modal:
    class DayModal(discord.ui.Modal):
        def __init__(self):
            super().__init__(title=title[:45], timeout=timeout, custom_id=archive_modal_id(anchor_ref, channel_id))
            self.add_item(
                discord.ui.TextInput(
                    label=label[:45],
                    custom_id=DAY_INPUT_ID,
                    style=discord.TextStyle.short,
                    required=True,
                    max_length=9,
                )
            )

    return DayModal()


def modal_value(data: dict[str, Any] | None, custom_id: str) -> str | None:
    for row in (data or {}).get("components") or []:
        children = list(row.get("components") or [])
        if row.get("component"):
            children.append(row["component"])
        for comp in children:
            if comp.get("custom_id") == custom_id:
                return str(comp.get("value") or "")
    return None


class AdminPromptDispatcher:
    """
    Posts approval prompts to the admin channel.

    The target is the configured admin channel, or the notification channel
    from settings when none is configured. Send failures are logged only.
    """

    def __init__(self, *, bot, admin_channel_id: int = 0, admin_role_id: int = 0, fallback_channel_func: Callable | None = None) -> None:
        self.bot = bot
        self.admin_channel_id = int(admin_channel_id or 0)
        self.admin_role_id = int(admin_role_id or 0)
        self.fallback_channel_func = fallback_channel_func

    async def _target_channel_id(self) -> int:
        if self.admin_channel_id:
            return self.admin_channel_id
        if self.fallback_channel_func is not None:
            return int(await self.fallback_channel_func() or 0)
        return 0

    async def send(self, text: str, controls: list[PromptControl]) -> bool:
        try:
            channel_id = await self._target_channel_id()
            if not channel_id:
                print("[Prompt] No admin channel configured; prompt dropped")
                return False
            channel = await resolve_channel(self.bot, channel_id)
            if channel is None or not hasattr(channel, "send"):
                print(f"[Prompt] Admin channel {channel_id} unavailable; prompt dropped")
                return False

            content = f"<@&{self.admin_role_id}> {text}" if self.admin_role_id else text
            kwargs: dict[str, Any] = {"content": content[:2000]}
            if controls:
                kwargs["view"] = build_prompt_view(controls)
            if self.admin_role_id:
                kwargs["allowed_mentions"] = discord.AllowedMentions(roles=True, users=False, everyone=False)
            await channel.send(**kwargs)
            print(f"[Prompt] sent channel={channel_id} controls={[c.custom_id for c in controls]}")
            return True
        except Exception as e:
            print(f"[Prompt] send failed: {e}")
            return False


async def handle_archive_interaction(
    interaction: discord.Interaction,
    *,
    session_manager,
    dialogue,
    admin_role_id: int,
    owner_user_ids: set[int],
    modal_timeout_seconds: float,
) -> bool:
    """Route archive buttons and the day modal. Returns False when the interaction is not ours."""
    if interaction.type not in (discord.InteractionType.component, discord.InteractionType.modal_submit):
        return False
    data = interaction.data or {}
    parsed = decode_id(data.get("custom_id"))
    if parsed is None or parsed.namespace != NAMESPACE_ARCHIVE:
        return False

    if not can_resolve_archive(interaction.user, admin_role_id=admin_role_id, owner_user_ids=owner_user_ids):
        await interaction.response.send_message(dialogue.render("error.not_authorized"), ephemeral=True)
        return True

    anchor = int_arg(parsed, 0)
    source_channel_id = int_arg(parsed, 1)
    if anchor is None:
        await interaction.response.send_message(dialogue.render("archive.expired"), ephemeral=True)
        return True

    if interaction.type == discord.InteractionType.modal_submit:
        if parsed.action != ACTION_SUBMIT_DAY:
            return False
        raw_day = modal_value(data, DAY_INPUT_ID) or ""
        await interaction.response.defer(ephemeral=True, thinking=True)
        ok, msg = await session_manager.submit_day(anchor, raw_day, source_channel_id)
        print(f"[Prompt] modal submit by={interaction.user.id} anchor={anchor} ok={ok}")
        await interaction.followup.send(msg, ephemeral=True)
        return True

    if parsed.action == ACTION_ADD:
        modal = build_day_modal(
            anchor_ref=anchor,
            channel_id=source_channel_id or 0,
            title=dialogue.render("archive.modal.title"),
            label=dialogue.render("archive.modal.label"),
            timeout=modal_timeout_seconds,
        )
        await interaction.response.send_modal(modal)
        return True

    if parsed.action in (ACTION_FORCE, ACTION_CONFIRM, ACTION_IGNORE):
        await interaction.response.defer()
        day_arg = parsed.arg(2)
        ok, msg = await session_manager.resolve(
            anchor,
            parsed.action,
            (day_arg,) if day_arg is not None else (),
            source_channel_id,
        )
        print(f"[Prompt] action={parsed.action} by={interaction.user.id} anchor={anchor} ok={ok}")
        await interaction.edit_original_response(content=msg, view=None)
        return True

    await interaction.response.send_message(dialogue.render("archive.unknown_action", action=parsed.action), ephemeral=True)
    return True

from __future__ import annotations

import discord
from discord.ext import commands
from misc.admin_prompts import handle_archive_interaction
from misc.discord_gates import message_in_archive_channels
from misc.runtime_deps import RuntimeBootDeps
from misc.runtime_deps import RuntimeDeps


def register_runtime_events(
    bot: commands.Bot,
    *,
    deps: RuntimeDeps,
    boot: RuntimeBootDeps,
) -> None:
    @bot.event
    async def on_ready():
        print(f"Walpurgis is online as {bot.user}")

        # on_ready fires again after reconnects; restore and catch-up run once per process.
        if not getattr(bot, "_archive_sessions_restored", False):
            bot._archive_sessions_restored = True
            try:
                await boot.restore_sessions_func()
            except Exception as e:
                print(f"[Session] restore failed: {e}")

        if not getattr(bot, "_reminders_started", False):
            bot._reminders_started = True
            try:
                await boot.start_reminders_func()
            except Exception as e:
                print(f"[Reminder] startup failed: {e}")

    @bot.event
    async def on_message(message: discord.Message):
        if message.author.bot:
            return

        if (message.content or "").lstrip().startswith("!"):
            await bot.process_commands(message)
            return

        if int(message.author.id) != deps.tracked_user_id:
            return
        if not message_in_archive_channels(message, boot.archive_channel_ids):
            return

        try:
            state = await deps.session_manager.handle_event(deps.event_from_message(message))
        except Exception as e:
            print(f"[Session] handle_event failed message_id={message.id}: {e}")
            return
        print(f"[Session] message_id={message.id} state={state}")

    @bot.event
    async def on_interaction(interaction: discord.Interaction):
        try:
            await handle_archive_interaction(
                interaction,
                session_manager=deps.session_manager,
                dialogue=deps.dialogue,
                admin_role_id=deps.admin_role_id,
                owner_user_ids=deps.owner_user_ids,
                modal_timeout_seconds=deps.modal_timeout_seconds,
            )
        except Exception as e:
            print(f"[Prompt] interaction failed custom_id={(interaction.data or {}).get('custom_id')}: {e}")

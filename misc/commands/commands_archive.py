from __future__ import annotations

import asyncio

from discord.ext import commands

from archive.errors import StoreFailure, ValidationError
from archive.store import MAX_DAY
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates


def format_day_ranges(days: list[int]) -> str:
    """[1, 2, 3, 5, 7, 8] -> "1-3, 5, 7-8"."""
    ordered = sorted(set(int(d) for d in days))
    if not ordered:
        return ""
    parts: list[str] = []
    start = prev = ordered[0]
    for d in ordered[1:]:
        if d == prev + 1:
            prev = d
            continue
        parts.append(f"{start}-{prev}" if prev != start else str(start))
        start = prev = d
    parts.append(f"{start}-{prev}" if prev != start else str(start))
    return ", ".join(parts)


def _parse_positive_int(token: str) -> int | None:
    try:
        value = int(str(token or "").strip())
    except ValueError:
        return None
    return value if 0 < value <= MAX_DAY else None


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> None:
    dialogue = deps.dialogue

    async def _db(fn, *args, **kwargs):
        async with deps.db_lock:
            return await asyncio.to_thread(fn, deps.db_conn, *args, **kwargs)

    def allowed(ctx: commands.Context) -> bool:
        if gates.can_resolve_archive(ctx.author):
            return True
        print(f"[Commands] denied command={getattr(ctx.command, 'name', '?')} user_id={getattr(ctx.author, 'id', 0)}")
        return False

    @bot.command(name="archive.status")
    async def archive_status(ctx: commands.Context, start_token: str = "", end_token: str = ""):
        if not allowed(ctx):
            return
        max_day = await _db(deps.max_day_sync)
        if max_day is None:
            await ctx.send(dialogue.render("commands.status.empty"))
            return

        page = max(1, int(deps.status_page_days))
        start = _parse_positive_int(start_token) if start_token else max(1, max_day - page + 1)
        end = _parse_positive_int(end_token) if end_token else max(max_day, (start or 1))
        if start is None or end is None or start > end:
            await ctx.send(dialogue.render("commands.status.bad_range"))
            return

        archived = await _db(deps.archived_days_in_range_sync, start, end)
        have = set(archived)
        missing = [d for d in range(start, end + 1) if d not in have]
        none_text = dialogue.render("commands.status.none")
        lines = [
            dialogue.render("commands.status.header", start=start, end=end, max_day=max_day),
            dialogue.render("commands.status.archived", archived=format_day_ranges(archived) or none_text),
            dialogue.render("commands.status.missing", missing=format_day_ranges(missing) or none_text),
        ]
        await deps.send_chunked(ctx.channel, "\n".join(lines))

    @bot.command(name="archive.manual")
    async def archive_manual(ctx: commands.Context, message_id: str = "", day: str = ""):
        if not allowed(ctx):
            return
        msg_id = _parse_positive_int(message_id)
        if msg_id is None or not day:
            await ctx.send(dialogue.render("commands.manual.usage"))
            return
        ok, msg = await deps.session_manager.manual_archive(int(ctx.channel.id), msg_id, day)
        print(f"[Commands] archive.manual by={ctx.author.id} message_id={msg_id} day={day} ok={ok}")
        await ctx.send(msg)

    @bot.command(name="archive.delete")
    async def archive_delete(ctx: commands.Context, kind: str = "", target: str = ""):
        if not allowed(ctx):
            return
        kind = (kind or "").strip().lower()
        value = _parse_positive_int(target)
        if kind not in {"day", "message"} or value is None:
            await ctx.send(dialogue.render("commands.delete.usage"))
            return

        try:
            if kind == "day":
                if await _db(deps.fetch_post_by_day_sync, value) is None:
                    await ctx.send(dialogue.render("commands.delete.day_missing", day=value))
                    return
                await _db(deps.delete_post_by_day_sync, value)
                print(f"[Commands] archive.delete by={ctx.author.id} day={value}")
                await ctx.send(dialogue.render("commands.delete.day_ok", day=value))
                return

            days = await _db(deps.delete_posts_by_message_sync, value)
        except StoreFailure as e:
            print(f"[Commands] archive.delete failed kind={kind} target={value}: {e}")
            await ctx.send(dialogue.render("commands.delete.failed"))
            return

        if not days:
            await ctx.send(dialogue.render("commands.delete.message_missing"))
            return
        print(f"[Commands] archive.delete by={ctx.author.id} message_id={value} days={days}")
        await ctx.send(dialogue.render("commands.delete.message_ok", days=", ".join(str(d) for d in days)))

    @bot.command(name="archive.reminder")
    async def archive_reminder(ctx: commands.Context, action: str = "show", value: str = ""):
        if not allowed(ctx):
            return
        action = (action or "show").strip().lower()
        fields: dict[str, object] = {}
        if action == "show":
            pass
        elif action == "on":
            fields["reminder_enabled"] = True
        elif action == "off":
            fields["reminder_enabled"] = False
        elif action == "time" and value:
            fields["reminder_time"] = value
        elif action == "tz" and value:
            fields["timezone"] = value
        elif action == "channel" and _parse_positive_int(value.strip("<#>")) is not None:
            fields["notification_channel_id"] = _parse_positive_int(value.strip("<#>"))
        else:
            await ctx.send(dialogue.render("commands.reminder.usage"))
            return

        try:
            if fields:
                settings = await _db(deps.update_settings_sync, fields)
            else:
                settings = await _db(deps.get_settings_sync)
        except ValidationError as e:
            await ctx.send(dialogue.render("commands.reminder.invalid", error=str(e)))
            return

        summary = dialogue.render(
            "commands.reminder.show",
            enabled=settings.reminder_enabled,
            time=settings.reminder_time or "-",
            timezone=settings.timezone or deps.reminder_service.default_timezone,
            channel=f"<#{settings.notification_channel_id}>" if settings.notification_channel_id else "-",
            last_sent_day=settings.last_reminder_sent_day if settings.last_reminder_sent_day is not None else "-",
        )
        if not fields:
            await ctx.send(summary)
            return

        await deps.reminder_service.reschedule()
        print(f"[Commands] archive.reminder by={ctx.author.id} fields={sorted(fields)}")
        await ctx.send(dialogue.render("commands.reminder.updated", summary=summary))

    @bot.command(name="archive.sessions")
    async def archive_sessions(ctx: commands.Context):
        if not allowed(ctx):
            return
        sessions = await _db(deps.list_sessions_sync)
        if not sessions:
            await ctx.send(dialogue.render("commands.sessions.empty"))
            return
        lines = [
            dialogue.render(
                "commands.sessions.line",
                user_id=s.user_id,
                message_id=s.message_id,
                state=s.state,
                days=s.detected_days,
                confidence=s.confidence,
                expires_ts=s.expires_ts,
            )
            for s in sessions
        ]
        await deps.send_chunked(ctx.channel, "\n".join(lines))

    @bot.command(name="archive.search")
    async def archive_search(ctx: commands.Context, day: str = ""):
        if not allowed(ctx):
            return
        value = _parse_positive_int(day)
        if value is None:
            await ctx.send(dialogue.render("commands.search.usage"))
            return
        post = await _db(deps.fetch_post_by_day_sync, value)
        if post is None:
            await ctx.send(dialogue.render("commands.search.not_found", day=value))
            return

        guild = getattr(ctx, "guild", None)
        if guild is not None:
            link = f"https://discord.com/channels/{guild.id}/{post.channel_id}/{post.message_id}"
        else:
            link = f"<#{post.channel_id}>"
        lines = [
            dialogue.render(
                "commands.search.result",
                day=post.day,
                link=link,
                created_ts=post.created_ts,
                media_count=len(post.media_urls),
            )
        ]
        lines.extend(post.media_urls or [dialogue.render("commands.search.no_media")])
        await deps.send_chunked(ctx.channel, "\n".join(lines))

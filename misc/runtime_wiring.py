from __future__ import annotations

from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from misc.commands.commands_archive import register as register_archive
from misc.runtime_deps import RuntimeBootDeps
from misc.runtime_deps import RuntimeDeps
from misc.events_runtime import register_runtime_events


def wire_bot_runtime(
    bot,
    *,
    db_lock,
    db_conn,
    send_chunked,
    dialogue,
    tracked_user_id: int,
    archive_channel_ids: set[int],
    admin_role_id: int,
    owner_user_ids: set[int],
    modal_timeout_seconds: int,
    can_resolve_archive,
    session_manager,
    reminder_service,
    event_from_message,
    archived_days_in_range_sync,
    max_day_sync,
    fetch_post_by_day_sync,
    delete_post_by_day_sync,
    delete_posts_by_message_sync,
    get_settings_sync,
    update_settings_sync,
    list_sessions_sync,
) -> None:
    command_deps = CommandDeps(
        db_lock=db_lock,
        db_conn=db_conn,
        send_chunked=send_chunked,
        dialogue=dialogue,
        archived_days_in_range_sync=archived_days_in_range_sync,
        max_day_sync=max_day_sync,
        fetch_post_by_day_sync=fetch_post_by_day_sync,
        delete_post_by_day_sync=delete_post_by_day_sync,
        delete_posts_by_message_sync=delete_posts_by_message_sync,
        get_settings_sync=get_settings_sync,
        update_settings_sync=update_settings_sync,
        list_sessions_sync=list_sessions_sync,
        session_manager=session_manager,
        reminder_service=reminder_service,
    )
    command_gates = CommandGates(
        can_resolve_archive=can_resolve_archive,
    )
    register_archive(bot, deps=command_deps, gates=command_gates)

    register_runtime_events(
        bot,
        deps=RuntimeDeps(
            db_lock=db_lock,
            db_conn=db_conn,
            tracked_user_id=int(tracked_user_id),
            session_manager=session_manager,
            event_from_message=event_from_message,
            dialogue=dialogue,
            admin_role_id=int(admin_role_id or 0),
            owner_user_ids=set(owner_user_ids),
            modal_timeout_seconds=int(modal_timeout_seconds),
            reminder_service=reminder_service,
        ),
        boot=RuntimeBootDeps(
            archive_channel_ids=set(archive_channel_ids),
            restore_sessions_func=session_manager.restore_sessions,
            start_reminders_func=reminder_service.start,
        ),
    )

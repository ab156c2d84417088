from __future__ import annotations

import asyncio
import sqlite3
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from archive.classifier import CONFIDENCE_HIGH, Classification, classify, merge_confidence
from archive.custom_ids import (
    ACTION_ADD,
    ACTION_CONFIRM,
    ACTION_FORCE,
    ACTION_IGNORE,
    PromptControl,
    archive_button_id,
)
from archive.errors import (
    DuplicateError,
    ExpiredContextError,
    SequenceViolation,
    StoreFailure,
    ValidationError,
)
from archive.session_store import (
    SessionRecord,
    claim_session_by_anchor_sync,
    delete_expired_sessions_sync,
    delete_session_sync,
    get_session_by_anchor_sync,
    get_session_sync,
    list_sessions_sync,
    upsert_session_sync,
)
from archive.store import (
    ArchivePost,
    create_post_with_media_sync,
    fetch_post_by_day_sync,
    fetch_posts_by_message_sync,
    max_day_sync,
    validate_day,
)
from archive.timers import TIMER_ESCALATION, TIMER_LIFETIME, TimerRegistry


STATE_EMPTY = "empty"
STATE_PARTIAL_MEDIA_ONLY = "partial_media_only"
STATE_AWAITING_SEQUENCE_APPROVAL = "awaiting_sequence_approval"
STATE_AWAITING_LOW_CONFIDENCE_APPROVAL = "awaiting_low_confidence_approval"
STATE_AWAITING_MEDIA_ONLY_APPROVAL = "awaiting_media_only_approval"
STATE_AWAITING_MANUAL_MULTI_DAY = "awaiting_manual_multi_day"
STATE_RESOLVED = "resolved"

MARK_ARCHIVED = "✅"
MARK_DUPLICATE = "⚠️"
MARK_FAILED = "❌"

# Channel messages fetched per look-behind; only the author's own events count toward the limit.
LOOKBEHIND_SCAN_FACTOR = 5
LOOKBEHIND_SCAN_MAX = 100


@dataclass(slots=True)
class InboundEvent:
    author_id: int
    channel_id: int
    event_id: int
    text: str = ""
    attachment_urls: list[str] = field(default_factory=list)
    created_at: int = 0


def parse_day(raw: Any) -> int:
    if raw is None:
        raise ValidationError("Missing day number")
    return validate_day(str(raw).strip())


def _archive_in_sequence_sync(conn: sqlite3.Connection, session: SessionRecord, day: int, created_ts: int) -> ArchivePost:
    # Duplicate and sequence checks run in the same db call as the write.
    if fetch_post_by_day_sync(conn, day) is not None:
        raise DuplicateError(day)
    expected = (max_day_sync(conn) or 0) + 1
    if day != expected:
        raise SequenceViolation(day, expected)
    return create_post_with_media_sync(
        conn,
        day=day,
        message_id=session.message_id,
        channel_id=session.channel_id,
        user_id=session.user_id,
        created_ts=created_ts,
        media_urls=session.media_urls,
        confirmed=True,
    )


class ArchiveSessionManager:
    """
    Per-author intake state machine for archive posts.

    Sessions live in archive_sessions; the TimerRegistry only holds the
    asyncio handles for their lifetime and media-only escalation deadlines
    and is rebuilt by restore_sessions() on startup.

    `source` provides history_before / fetch_event / mark / link for the
    inbound channel, `prompts` provides send(text, controls) for the admin
    channel, `dialogue` provides render(key, **values).
    """

    def __init__(
        self,
        *,
        db_lock,
        db_conn,
        tracked_user_id: int,
        source,
        prompts,
        dialogue,
        timers: TimerRegistry | None = None,
        session_lifetime_seconds: int = 300,
        media_only_delay_seconds: int = 15,
        lookbehind_limit: int = 5,
        now_func: Callable[[], float] | None = None,
    ) -> None:
        self.db_lock = db_lock
        self.db_conn = db_conn
        self.tracked_user_id = int(tracked_user_id)
        self.source = source
        self.prompts = prompts
        self.dialogue = dialogue
        self.timers = timers or TimerRegistry()
        self.session_lifetime_seconds = max(1, int(session_lifetime_seconds))
        self.media_only_delay_seconds = max(0, int(media_only_delay_seconds))
        self.lookbehind_limit = max(0, int(lookbehind_limit))
        self._now_func = now_func or time.time

        self._lock = asyncio.Lock()
        self._inflight_anchors: set[int] = set()

    def _now(self) -> int:
        return int(self._now_func())

    async def _db(self, fn, *args, **kwargs):
        async with self.db_lock:
            return await asyncio.to_thread(fn, self.db_conn, *args, **kwargs)

    def _link(self, channel_id: int, event_id: int) -> str:
        return self.source.link(int(channel_id), int(event_id))

    # ---- inbound events ----

    def is_tracked(self, event: InboundEvent) -> bool:
        return int(event.author_id) == self.tracked_user_id

    async def handle_event(self, event: InboundEvent) -> str:
        if not self.is_tracked(event):
            return STATE_EMPTY
        if not (event.text or "").strip() and not event.attachment_urls:
            return STATE_EMPTY

        async with self._lock:
            now = self._now()
            session = await self._db(get_session_sync, int(event.author_id))
            if session is not None and session.expires_ts <= now:
                print(f"[Session] action=expire result=dropped user_id={session.user_id} anchor={session.message_id}")
                await self._teardown(session)
                session = None

            if session is None:
                if not event.attachment_urls:
                    return STATE_EMPTY
                found = classify(event.text)
                if found.empty:
                    found = await self._look_behind(event)
                session = SessionRecord(
                    user_id=int(event.author_id),
                    channel_id=int(event.channel_id),
                    message_id=int(event.event_id),
                    expires_ts=now + self.session_lifetime_seconds,
                    media_urls=list(event.attachment_urls),
                    detected_days=list(found.days),
                    confidence=found.confidence,
                    state=STATE_EMPTY,
                    anchor_ts=int(event.created_at or now),
                )
                previous_state = STATE_EMPTY
                print(
                    f"[Session] action=create user_id={session.user_id} anchor={session.message_id} "
                    f"days={session.detected_days} confidence={session.confidence} media={len(session.media_urls)}"
                )
            else:
                previous_state = session.state
                found = classify(event.text)
                session.detected_days.extend(found.days)
                if not found.empty:
                    session.confidence = merge_confidence(session.confidence, found.confidence)
                session.media_urls.extend(event.attachment_urls)
                session.expires_ts = now + self.session_lifetime_seconds
                print(
                    f"[Session] action=merge user_id={session.user_id} anchor={session.message_id} "
                    f"event={event.event_id} days={session.detected_days} confidence={session.confidence}"
                )

            return await self._evaluate(session, previous_state, now)

    async def _look_behind(self, event: InboundEvent) -> Classification:
        if self.lookbehind_limit <= 0:
            return Classification()
        scan = min(LOOKBEHIND_SCAN_MAX, self.lookbehind_limit * LOOKBEHIND_SCAN_FACTOR)
        history = await self.source.history_before(int(event.channel_id), int(event.event_id), scan)
        seen = 0
        for prior in history:
            if int(prior.author_id) != int(event.author_id):
                continue
            seen += 1
            if seen > self.lookbehind_limit:
                break
            # A caption posted before an earlier media post belongs to that post.
            if prior.attachment_urls:
                break
            found = classify(prior.text)
            if not found.empty:
                print(f"[Session] action=look_behind result=hit anchor={event.event_id} source={prior.event_id} days={found.days}")
                return found
        return Classification()

    async def _evaluate(self, session: SessionRecord, previous_state: str, now: int) -> str:
        days = session.detected_days

        if len(days) == 1 and session.confidence == CONFIDENCE_HIGH:
            return await self._auto_archive(session, previous_state, now, int(days[0]))

        if len(days) > 1:
            await self._teardown(session)
            text = self.dialogue.render(
                "archive.prompt.multi_day",
                days=", ".join(f"`Day {d}`" for d in days),
                message_id=session.message_id,
                link=self._link(session.channel_id, session.message_id),
            )
            await self.prompts.send(text, [])
            print(f"[Session] action=multi_day result=manual user_id={session.user_id} anchor={session.message_id} days={days}")
            return STATE_AWAITING_MANUAL_MULTI_DAY

        if len(days) == 1:
            day = int(days[0])
            text = self.dialogue.render(
                "archive.prompt.low_confidence",
                day=day,
                link=self._link(session.channel_id, session.message_id),
            )
            controls = [
                PromptControl(
                    label=self.dialogue.render("archive.button.confirm", day=day),
                    custom_id=archive_button_id(ACTION_CONFIRM, session.message_id, session.channel_id, day),
                    style="success",
                ),
                self._ignore_control(session, "archive.button.ignore"),
            ]
            return await self._await_approval(session, previous_state, STATE_AWAITING_LOW_CONFIDENCE_APPROVAL, now, text, controls)

        # Media only so far: wait a little for a caption before escalating.
        session.state = STATE_PARTIAL_MEDIA_ONLY
        session.escalate_ts = now + self.media_only_delay_seconds
        await self._persist(session, now)
        return STATE_PARTIAL_MEDIA_ONLY

    async def _auto_archive(self, session: SessionRecord, previous_state: str, now: int, day: int) -> str:
        created_ts = int(session.anchor_ts or now)
        try:
            await self._db(_archive_in_sequence_sync, session, day, created_ts)
        except DuplicateError:
            print(f"[Archive] action=auto_archive result=duplicate day={day} anchor={session.message_id}")
            await self._teardown(session)
            await self.source.mark(session.channel_id, session.message_id, MARK_DUPLICATE)
            return STATE_RESOLVED
        except SequenceViolation as e:
            text = self.dialogue.render(
                "archive.prompt.sequence",
                day=day,
                expected_day=e.expected_day,
                link=self._link(session.channel_id, session.message_id),
            )
            controls = [
                PromptControl(
                    label=self.dialogue.render("archive.button.force", day=day),
                    custom_id=archive_button_id(ACTION_FORCE, session.message_id, session.channel_id, day),
                    style="danger",
                ),
                self._ignore_control(session, "archive.button.ignore"),
            ]
            return await self._await_approval(session, previous_state, STATE_AWAITING_SEQUENCE_APPROVAL, now, text, controls)
        except (StoreFailure, ValidationError) as e:
            print(f"[Archive] action=auto_archive result=error day={day} anchor={session.message_id} error={str(e)[:180]}")
            await self._teardown(session)
            await self.source.mark(session.channel_id, session.message_id, MARK_FAILED)
            return STATE_RESOLVED

        print(f"[Archive] action=auto_archive result=ok day={day} anchor={session.message_id} media={len(session.media_urls)}")
        await self._teardown(session)
        await self.source.mark(session.channel_id, session.message_id, MARK_ARCHIVED)
        return STATE_RESOLVED

    def _ignore_control(self, session: SessionRecord, label_key: str) -> PromptControl:
        return PromptControl(
            label=self.dialogue.render(label_key),
            custom_id=archive_button_id(ACTION_IGNORE, session.message_id, session.channel_id),
            style="secondary",
        )

    async def _await_approval(
        self,
        session: SessionRecord,
        previous_state: str,
        new_state: str,
        now: int,
        text: str,
        controls: list[PromptControl],
    ) -> str:
        session.state = new_state
        session.escalate_ts = None
        await self._persist(session, now)
        if previous_state != new_state:
            await self.prompts.send(text, controls)
            print(f"[Session] action=prompt state={new_state} user_id={session.user_id} anchor={session.message_id}")
        return new_state

    # ---- durable rows + timers ----

    async def _persist(self, session: SessionRecord, now: int) -> None:
        await self._db(upsert_session_sync, session)
        self._arm_timers(session, now)

    def _arm_timers(self, session: SessionRecord, now: int) -> None:
        anchor = int(session.message_id)
        self.timers.schedule(
            TIMER_LIFETIME,
            session.user_id,
            session.expires_ts - now,
            lambda: self._on_lifetime_expired(anchor),
        )
        if session.escalate_ts is None:
            self.timers.cancel(TIMER_ESCALATION, session.user_id)
        else:
            self.timers.schedule(
                TIMER_ESCALATION,
                session.user_id,
                session.escalate_ts - now,
                lambda: self._on_escalation_due(anchor),
            )

    async def _teardown(self, session: SessionRecord) -> None:
        self.timers.cancel_key(session.user_id)
        await self._db(delete_session_sync, session.user_id)

    async def _on_lifetime_expired(self, anchor: int) -> None:
        async with self._lock:
            session = await self._db(get_session_by_anchor_sync, anchor)
            if session is None:
                return
            now = self._now()
            if session.expires_ts > now:
                self._arm_timers(session, now)
                return
            claimed = await self._db(claim_session_by_anchor_sync, anchor)
            if claimed is None:
                return
            self.timers.cancel_key(claimed.user_id)
        print(f"[Session] action=lifetime_expired result=dropped user_id={claimed.user_id} anchor={anchor} state={claimed.state}")

    async def _on_escalation_due(self, anchor: int) -> None:
        async with self._lock:
            session = await self._db(get_session_by_anchor_sync, anchor)
            if session is None or session.escalate_ts is None:
                return
            now = self._now()
            if session.escalate_ts > now:
                self._arm_timers(session, now)
                return
            claimed = await self._db(claim_session_by_anchor_sync, anchor)
            if claimed is None:
                return
            self.timers.cancel_key(claimed.user_id)

        if claimed.detected_days:
            print(f"[Session] action=escalate result=stale user_id={claimed.user_id} anchor={anchor} days={claimed.detected_days}")
            return

        text = self.dialogue.render("archive.prompt.media_only", link=self._link(claimed.channel_id, anchor))
        controls = [
            PromptControl(
                label=self.dialogue.render("archive.button.add"),
                custom_id=archive_button_id(ACTION_ADD, anchor, claimed.channel_id),
                style="primary",
            ),
            self._ignore_control(claimed, "archive.button.not_archive"),
        ]
        await self.prompts.send(text, controls)
        print(f"[Session] action=escalate state={STATE_AWAITING_MEDIA_ONLY_APPROVAL} user_id={claimed.user_id} anchor={anchor}")

    async def restore_sessions(self) -> int:
        """Drop expired rows and re-arm timers for the rest. Returns how many were re-armed."""
        async with self._lock:
            now = self._now()
            dropped = await self._db(delete_expired_sessions_sync, now)
            for user_id in dropped:
                print(f"[Session] action=restore result=expired user_id={user_id}")
            sessions = await self._db(list_sessions_sync)
            for s in sessions:
                self._arm_timers(s, now)
        print(f"[Session] action=restore result=ok rearmed={len(sessions)} dropped={len(dropped)}")
        return len(sessions)

    def shutdown(self) -> None:
        self.timers.cancel_all()

    # ---- admin resolution ----

    async def resolve(self, anchor_ref: int, action: str, args=(), channel_id: int | None = None) -> tuple[bool, str]:
        action = str(action or "").strip()
        if action == ACTION_IGNORE:
            return await self._ignore(int(anchor_ref))
        if action in (ACTION_FORCE, ACTION_CONFIRM):
            try:
                day = parse_day(args[0] if args else None)
            except ValidationError:
                return False, self.dialogue.render("archive.invalid_day")
            return await self._finalize(int(anchor_ref), day, channel_id, via=action)
        return False, self.dialogue.render("archive.unknown_action", action=action or "?")

    async def submit_day(self, anchor_ref: int, raw_day: str, channel_id: int | None = None) -> tuple[bool, str]:
        try:
            day = parse_day(raw_day)
        except ValidationError:
            return False, self.dialogue.render("archive.invalid_day")
        return await self._finalize(int(anchor_ref), day, channel_id, via="submit_day")

    async def _ignore(self, anchor: int) -> tuple[bool, str]:
        async with self._lock:
            session = await self._db(claim_session_by_anchor_sync, anchor)
            if session is not None:
                self.timers.cancel_key(session.user_id)
        if session is None:
            print(f"[Session] action=ignore result=expired anchor={anchor}")
            return False, self.dialogue.render("archive.expired")
        print(f"[Session] action=ignore result=ok user_id={session.user_id} anchor={anchor}")
        return True, self.dialogue.render("archive.ignored")

    async def _finalize(self, anchor: int, day: int, channel_id: int | None, *, via: str) -> tuple[bool, str]:
        if anchor in self._inflight_anchors:
            print(f"[Archive] action={via} result=in_flight anchor={anchor}")
            return False, self.dialogue.render("archive.expired")
        self._inflight_anchors.add(anchor)
        try:
            async with self._lock:
                if await self._db(fetch_posts_by_message_sync, anchor):
                    raise ExpiredContextError(f"Anchor {anchor} is already archived")

                session = await self._db(claim_session_by_anchor_sync, anchor)
                if session is not None:
                    self.timers.cancel_key(session.user_id)
                else:
                    session = await self._reconstruct(anchor, channel_id)

                await self._db(
                    create_post_with_media_sync,
                    day=day,
                    message_id=anchor,
                    channel_id=session.channel_id,
                    user_id=session.user_id,
                    created_ts=int(session.anchor_ts or self._now()),
                    media_urls=session.media_urls,
                    confirmed=True,
                )
        except ExpiredContextError as e:
            print(f"[Archive] action={via} result=expired anchor={anchor} reason={e}")
            return False, self.dialogue.render("archive.expired")
        except DuplicateError as e:
            print(f"[Archive] action={via} result=duplicate anchor={anchor} day={e.day}")
            return False, self.dialogue.render("archive.duplicate_day", day=e.day)
        except (StoreFailure, ValidationError) as e:
            print(f"[Archive] action={via} result=error anchor={anchor} day={day} error={str(e)[:180]}")
            return False, self.dialogue.render("archive.store_failed", day=day)
        finally:
            self._inflight_anchors.discard(anchor)

        print(f"[Archive] action={via} result=ok anchor={anchor} day={day} media={len(session.media_urls)}")
        await self.source.mark(session.channel_id, anchor, MARK_ARCHIVED)
        return True, self.dialogue.render("archive.resolved", day=day)

    async def _reconstruct(self, anchor: int, channel_id: int | None) -> SessionRecord:
        if not channel_id:
            raise ExpiredContextError(f"No live session for anchor {anchor} and no channel to re-fetch from")
        event = await self.source.fetch_event(int(channel_id), anchor)
        if event is None:
            raise ExpiredContextError(f"Anchor {anchor} could not be re-fetched from channel {channel_id}")
        return SessionRecord(
            user_id=int(event.author_id),
            channel_id=int(event.channel_id),
            message_id=int(event.event_id),
            expires_ts=self._now(),
            media_urls=list(event.attachment_urls),
            anchor_ts=int(event.created_at or self._now()),
        )

    async def manual_archive(self, channel_id: int, message_id: int, raw_day: str) -> tuple[bool, str]:
        """Archive one day from an arbitrary message; a message may carry several days this way."""
        try:
            day = parse_day(raw_day)
        except ValidationError:
            return False, self.dialogue.render("archive.invalid_day")
        event = await self.source.fetch_event(int(channel_id), int(message_id))
        if event is None:
            return False, self.dialogue.render("commands.manual.not_found")
        if not event.attachment_urls:
            return False, self.dialogue.render("commands.manual.no_media")
        try:
            await self._db(
                create_post_with_media_sync,
                day=day,
                message_id=int(event.event_id),
                channel_id=int(event.channel_id),
                user_id=int(event.author_id),
                created_ts=int(event.created_at or self._now()),
                media_urls=event.attachment_urls,
                confirmed=True,
            )
        except DuplicateError:
            return False, self.dialogue.render("archive.duplicate_day", day=day)
        except StoreFailure as e:
            print(f"[Archive] action=manual result=error message_id={message_id} day={day} error={str(e)[:180]}")
            return False, self.dialogue.render("archive.store_failed", day=day)
        print(f"[Archive] action=manual result=ok message_id={message_id} day={day}")
        await self.source.mark(int(channel_id), int(message_id), MARK_ARCHIVED)
        return True, self.dialogue.render("commands.manual.ok", day=day)

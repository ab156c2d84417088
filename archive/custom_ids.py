from __future__ import annotations

from dataclasses import dataclass


# Interaction ids look like "namespace:action:arg1:arg2:..." everywhere.
SEPARATOR = ":"
MAX_CUSTOM_ID_LEN = 100

NAMESPACE_ARCHIVE = "archive"

ACTION_FORCE = "force"
ACTION_CONFIRM = "confirm"
ACTION_IGNORE = "ignore"
ACTION_ADD = "add"
ACTION_SUBMIT_DAY = "submitDay"

ARCHIVE_BUTTON_ACTIONS = {ACTION_FORCE, ACTION_CONFIRM, ACTION_IGNORE, ACTION_ADD}

DAY_INPUT_ID = "day_input"


@dataclass(frozen=True, slots=True)
class ParsedId:
    namespace: str
    action: str
    args: tuple[str, ...] = ()

    def arg(self, index: int) -> str | None:
        if 0 <= index < len(self.args):
            return self.args[index]
        return None


def encode_id(namespace: str, action: str, *args) -> str:
    parts = [str(namespace).strip(), str(action).strip()]
    for a in args:
        if a is None:
            continue
        parts.append(str(a))
    for p in parts:
        if not p or SEPARATOR in p:
            raise ValueError(f"Invalid custom id segment: {p!r}")
    out = SEPARATOR.join(parts)
    if len(out) > MAX_CUSTOM_ID_LEN:
        raise ValueError(f"Custom id longer than {MAX_CUSTOM_ID_LEN} chars: {out}")
    return out


def decode_id(custom_id: str | None) -> ParsedId | None:
    raw = (custom_id or "").strip()
    if not raw:
        return None
    parts = raw.split(SEPARATOR)
    if len(parts) < 2 or not parts[0] or not parts[1]:
        return None
    return ParsedId(namespace=parts[0], action=parts[1], args=tuple(parts[2:]))


def archive_button_id(action: str, anchor_ref: int, channel_id: int, day: int | None = None) -> str:
    # archive:<action>:<anchor message id>:<source channel id>[:<day>]
    if action not in ARCHIVE_BUTTON_ACTIONS:
        raise ValueError(f"Unknown archive button action: {action}")
    return encode_id(NAMESPACE_ARCHIVE, action, int(anchor_ref), int(channel_id), day)


def archive_modal_id(anchor_ref: int, channel_id: int) -> str:
    return encode_id(NAMESPACE_ARCHIVE, ACTION_SUBMIT_DAY, int(anchor_ref), int(channel_id))


def int_arg(parsed: ParsedId, index: int) -> int | None:
    raw = parsed.arg(index)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


@dataclass(frozen=True, slots=True)
class PromptControl:
    label: str
    custom_id: str
    style: str = "secondary"

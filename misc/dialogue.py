from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import yaml


FALLBACK_KEY = "error.generic"
FALLBACK_TEXT = "An unexpected error occurred."
_PLACEHOLDER_RE = re.compile(r"\{([a-zA-Z_][a-zA-Z0-9_]*)\}")


def _flatten(prefix: str, value: Any, out: dict[str, str]) -> None:
    if isinstance(value, dict):
        for k, v in value.items():
            key = f"{prefix}.{k}" if prefix else str(k)
            _flatten(key, v, out)
        return
    if value is None:
        return
    out[prefix] = str(value).rstrip("\n")


class DialogueCatalog:
    """
    User-facing strings keyed by dotted names ("archive.resolved").

    The YAML file may nest mappings; nested keys are joined with dots. The
    file is re-read whenever its mtime changes, so copy can be edited on a
    running bot.
    """

    def __init__(self, path: str) -> None:
        self.path = str(path)
        self._cache: dict[str, str] | None = None
        self._mtime: float | None = None

    def _read(self) -> dict[str, str]:
        p = Path(self.path)
        if not p.exists():
            raise RuntimeError(f"Dialogue file not found: {self.path}")
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
        if not isinstance(raw, dict):
            raise RuntimeError("Dialogue file must contain a top-level mapping")
        out: dict[str, str] = {}
        _flatten("", raw, out)
        return out

    def strings(self, force_reload: bool = False) -> dict[str, str]:
        p = Path(self.path)
        mtime = p.stat().st_mtime if p.exists() else None
        if not force_reload and self._cache is not None and mtime == self._mtime:
            return self._cache
        self._cache = self._read()
        self._mtime = mtime
        print(f"[Dialogue] loaded keys={len(self._cache)} path={self.path}")
        return self._cache

    def reload(self) -> int:
        return len(self.strings(force_reload=True))

    def has(self, key: str) -> bool:
        return key in self.strings()

    def render(self, key: str, **values: Any) -> str:
        table = self.strings()
        text = table.get(key)
        if text is None:
            print(f"[Dialogue] missing key={key!r}; falling back to {FALLBACK_KEY}")
            text = table.get(FALLBACK_KEY, FALLBACK_TEXT)

        def _sub(m: re.Match) -> str:
            name = m.group(1)
            if name in values:
                return str(values[name])
            return m.group(0)

        return _PLACEHOLDER_RE.sub(_sub, text)

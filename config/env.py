from __future__ import annotations

import os
import re


def parse_id_set(raw: str | None) -> set[int]:
    if not raw:
        return set()
    out: set[int] = set()
    for tok in re.split(r"[\s,;]+", raw.strip()):
        if not tok:
            continue
        if re.fullmatch(r"\d{1,22}", tok):
            out.add(int(tok))
        else:
            print(f"[CFG] ignoring non-numeric id token {tok!r}")
    return out


def env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return int(default)
    try:
        return int(raw)
    except ValueError:
        print(f"[CFG] invalid {name}={raw!r}; falling back to {default}")
        return int(default)


def env_str(name: str, default: str) -> str:
    return (os.getenv(name) or "").strip() or default

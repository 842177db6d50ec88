from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any


BASE_DIR = Path(__file__).resolve().parent


class _SafeDict(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


@lru_cache(maxsize=4)
def _load_catalog(locale: str) -> dict[str, Any]:
    path = BASE_DIR / f"{locale}.json"
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    return data if isinstance(data, dict) else {}


def normalize_locale(value: str | None, default: str = "en") -> str:
    if not value:
        return default
    token = value.strip().lower()
    if "-" in token:
        token = token.split("-", 1)[0]
    if "_" in token:
        token = token.split("_", 1)[0]
    return token or default


def lookup(key: str, locale: str = "en") -> str | None:
    """Raw template for ``key`` or None; falls back to the English catalog."""
    locale = normalize_locale(locale)
    template = _load_catalog(locale).get(key)
    if template is None and locale != "en":
        template = _load_catalog("en").get(key)
    if template is None:
        return None
    return str(template)


def t(key: str, locale: str = "en", **vars: Any) -> str:
    template = lookup(key, locale)
    if template is None:
        template = key
    return template.format_map(_SafeDict(**vars))

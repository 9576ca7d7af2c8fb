"""
Device-scoped preferences.

A small key/value store backed by one JSON file. It holds display settings
(``app_global_settings``) and the per-profile "hide amounts" toggle
(``visibility_hidden_<profile_id>``). Settings stored on the family
document override the local copy when a family is signed in.
"""

import json
from pathlib import Path
from typing import Any, Optional

import structlog
from pydantic import BaseModel, Field

from family_ledger.config import LedgerSettings
from family_ledger.models.ledger import Family

SETTINGS_KEY = "app_global_settings"
VISIBILITY_DEFAULT_KEY = "visibility_hidden_default"

logger = structlog.get_logger(__name__)


class DisplaySettings(BaseModel):
    """Currency and language shown in the app."""

    currency: str = Field(default="VND", pattern="^(VND|USD)$")
    language: str = Field(default="en", pattern="^(en|vi)$")


def visibility_key(profile_id: Optional[str]) -> str:
    if profile_id:
        return f"visibility_hidden_{profile_id}"
    return VISIBILITY_DEFAULT_KEY


class LocalPreferences:
    """JSON file key/value store. Values must be JSON-serializable."""

    def __init__(self, path: Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("preferences_unreadable", path=str(self._path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self._path)

    def get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key: str) -> bool:
        data = self._load()
        if key not in data:
            return False
        del data[key]
        self._save(data)
        return True


def load_display_settings(prefs: LocalPreferences, defaults: LedgerSettings) -> DisplaySettings:
    """Local display settings, falling back to configured defaults per field."""
    stored = prefs.get(SETTINGS_KEY) or {}
    return DisplaySettings(
        currency=stored.get("currency") or defaults.default_currency,
        language=stored.get("language") or defaults.default_language,
    )


def save_display_setting(prefs: LocalPreferences, key: str, value: str) -> DisplaySettings:
    """
    Change one display setting locally.

    Raises:
        ValueError: If the key or value is not a supported setting
    """
    if key not in DisplaySettings.model_fields:
        raise ValueError(f"Unknown display setting: {key}")
    stored = dict(prefs.get(SETTINGS_KEY) or {})
    stored[key] = value
    DisplaySettings(**stored)  # Validate before persisting
    prefs.set(SETTINGS_KEY, stored)
    return DisplaySettings(**stored)


def sync_display_settings(
    prefs: LocalPreferences,
    family: Optional[Family],
    defaults: LedgerSettings,
) -> DisplaySettings:
    """
    Merge the family's cloud settings into the local copy.

    Cloud values win when present; the merged result is written back locally.
    """
    if family is not None:
        for key in ("currency", "language"):
            value = getattr(family, key)
            if value:
                save_display_setting(prefs, key, value)
    return load_display_settings(prefs, defaults)


def is_values_hidden(prefs: LocalPreferences, profile_id: Optional[str]) -> bool:
    return bool(prefs.get(visibility_key(profile_id), False))


def toggle_values_hidden(prefs: LocalPreferences, profile_id: Optional[str]) -> bool:
    """Flip the hide-amounts toggle. Returns the new value."""
    hidden = not is_values_hidden(prefs, profile_id)
    prefs.set(visibility_key(profile_id), hidden)
    return hidden

"""Settings persistence — load and save catalog settings and session state."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir

from wallet_catalog.models import (
    CONFIG_APP_NAME,
    DEFAULT_EXPIRING_SOON_DAYS,
    DEFAULT_EXPIRING_WINDOW_DAYS,
    DEFAULT_POLL_DELAY_SECONDS,
    MAX_POLL_DELAY_SECONDS,
    SortDirection,
)

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.json"

# ============================================================================
# Settings model
# ============================================================================
#
# Validation contract — _dict_to_settings() guarantees valid output for any input:
#
#   Field                  Rule                              Handler
#   ─────────────────────  ────────────────────────────────  ─────────────────────
#   poll_delay_seconds     0 ≤ x ≤ MAX_POLL_DELAY_SECONDS    _coerce_poll_delay
#   expiring_*_days        x ≥ 1                             _coerce_days
#   session.sort_direction in SortDirection                  _parse_session_state
#   session.selections     dict[str, list[str]]              _parse_selections
#   scalar fields          type-checked via _safe_get()      _dict_to_settings
#


@dataclass(slots=True)
class SessionState:
    """Applied filters and search to restore on the next run."""

    selections: dict[str, list[str]] = field(default_factory=dict)
    sort_direction: SortDirection = SortDirection.ASCENDING
    search_text: str = ""


@dataclass(slots=True)
class CatalogSettings:
    """User-tunable catalog behaviour plus the saved session."""

    poll_delay_seconds: float = DEFAULT_POLL_DELAY_SECONDS
    expiring_soon_days: int = DEFAULT_EXPIRING_SOON_DAYS
    expiring_window_days: int = DEFAULT_EXPIRING_WINDOW_DAYS
    fuzzy_search: bool = False
    cancel_stale_fetches: bool = False
    session: SessionState = field(default_factory=SessionState)
    version: int = 1


def get_config_path() -> Path:
    """Get the path to the settings file.

    Uses platformdirs for cross-platform config directory:
    - Linux: ~/.config/wallet-catalog/config.json
    - macOS: ~/Library/Application Support/wallet-catalog/config.json
    - Windows: %APPDATA%/wallet-catalog/config.json
    """
    return Path(user_config_dir(CONFIG_APP_NAME)) / CONFIG_FILENAME


def _settings_to_dict(settings: CatalogSettings) -> dict[str, Any]:
    """Serialize CatalogSettings to a JSON-compatible dictionary."""
    return {
        "version": settings.version,
        "poll_delay_seconds": _coerce_poll_delay(settings.poll_delay_seconds),
        "expiring_soon_days": settings.expiring_soon_days,
        "expiring_window_days": settings.expiring_window_days,
        "fuzzy_search": settings.fuzzy_search,
        "cancel_stale_fetches": settings.cancel_stale_fetches,
        "session": {
            "selections": settings.session.selections,
            "sort_direction": settings.session.sort_direction.value,
            "search_text": settings.session.search_text,
        },
    }


def _safe_get(data: dict, key: str, default: Any, expected_type: type | tuple[type, ...]) -> Any:
    """Safely get a value from dict with type validation.

    Returns the default if key is missing or value has wrong type.
    """
    value = data.get(key, default)
    if not isinstance(value, expected_type) or isinstance(value, bool) != isinstance(
        default, bool
    ):
        return default
    return value


def _coerce_poll_delay(value: Any) -> float:
    """Validate and clamp the delay between deferred-issuance checks."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_POLL_DELAY_SECONDS
    return max(0.0, min(float(value), MAX_POLL_DELAY_SECONDS))


def _coerce_days(value: Any, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        return default
    return value


def _parse_selections(raw: Any) -> dict[str, list[str]]:
    if not isinstance(raw, dict):
        return {}
    result: dict[str, list[str]] = {}
    for group_id, filter_ids in raw.items():
        if not isinstance(group_id, str) or not isinstance(filter_ids, list):
            continue
        result[group_id] = [fid for fid in filter_ids if isinstance(fid, str)]
    return result


def _parse_session_state(data: dict[str, Any]) -> SessionState:
    """Parse the session section from settings data."""
    session_data = data.get("session", {})
    if not isinstance(session_data, dict):
        session_data = {}

    direction_raw = _safe_get(session_data, "sort_direction", SortDirection.ASCENDING.value, str)
    try:
        direction = SortDirection(direction_raw)
    except ValueError:
        logger.warning("Invalid sort_direction %r, defaulting to ascending", direction_raw)
        direction = SortDirection.ASCENDING

    return SessionState(
        selections=_parse_selections(session_data.get("selections")),
        sort_direction=direction,
        search_text=_safe_get(session_data, "search_text", "", str),
    )


def _dict_to_settings(data: dict[str, Any]) -> CatalogSettings:
    """Deserialize a dictionary to CatalogSettings with type validation."""
    return CatalogSettings(
        poll_delay_seconds=_coerce_poll_delay(
            data.get("poll_delay_seconds", DEFAULT_POLL_DELAY_SECONDS)
        ),
        expiring_soon_days=_coerce_days(
            data.get("expiring_soon_days"), DEFAULT_EXPIRING_SOON_DAYS
        ),
        expiring_window_days=_coerce_days(
            data.get("expiring_window_days"), DEFAULT_EXPIRING_WINDOW_DAYS
        ),
        fuzzy_search=_safe_get(data, "fuzzy_search", False, bool),
        cancel_stale_fetches=_safe_get(data, "cancel_stale_fetches", False, bool),
        session=_parse_session_state(data),
        version=_safe_get(data, "version", 1, int),
    )


def load_settings() -> CatalogSettings:
    """Load settings from disk.

    Returns defaults if the file doesn't exist or is corrupted, logging the
    specific problem.
    """
    config_path = get_config_path()

    if not config_path.exists():
        return CatalogSettings()

    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            logger.warning("Settings file is not a JSON object, using defaults")
            return CatalogSettings()
        return _dict_to_settings(data)
    except json.JSONDecodeError as e:
        logger.warning("Settings file has invalid JSON, using defaults: %s", e)
        return CatalogSettings()
    except OSError as e:
        logger.warning("Could not read settings file, using defaults: %s", e)
        return CatalogSettings()


def _atomic_write_text(path: Path, text: str, prefix: str) -> None:
    """Write ``text`` to ``path`` via a temp file in the same dir + os.replace().

    An interrupted write never leaves a truncated file; the temp file is
    removed on failure and the error propagates.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp", prefix=prefix)
    closed = False
    try:
        os.write(fd, text.encode("utf-8"))
        os.close(fd)
        closed = True
        os.replace(tmp_path, path)
    except BaseException:
        if not closed:
            os.close(fd)
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def save_settings(settings: CatalogSettings) -> bool:
    """Save settings to disk atomically.

    Returns True on success, False on failure.
    """
    try:
        json_str = json.dumps(_settings_to_dict(settings), indent=2, ensure_ascii=False)
        _atomic_write_text(get_config_path(), json_str, ".config-")
        return True
    except OSError as e:
        logger.error("Failed to save settings: %s", e)
        return False


__all__ = [
    "CONFIG_APP_NAME",
    "CONFIG_FILENAME",
    "CatalogSettings",
    "SessionState",
    "get_config_path",
    "load_settings",
    "save_settings",
]

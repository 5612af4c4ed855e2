"""Versioned JSON persistence for rooms, personas and user preferences.

On disk the envelope is ``{"rooms", "availablePersonas", "userPreferences",
"version"}`` with camelCase keys throughout. Older files are upgraded one
version at a time; every upgrade step is a pure function over the raw dict
and tolerates missing keys. The upgraded dict is then validated with pydantic.
"""

import copy
import json
import logging
import os
import tempfile
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError, with_config

from meeting_room.models import PERSISTED, MeetingRoom, MeetingSettings, Persona, UserPreferences

logger = logging.getLogger(__name__)

CURRENT_VERSION = 2

_UNTITLED_ROOM = "Untitled meeting"
_CONSENSUS_KEYS = ("supportRate", "opposeRate", "consensusReached", "threshold")


class StateFileError(Exception):
    """Raised when a state file exists but cannot be read back."""


@with_config(PERSISTED)
@dataclass
class AppState:
    rooms: list[MeetingRoom] = field(default_factory=list)
    available_personas: list[Persona] = field(default_factory=list)
    user_preferences: UserPreferences = field(default_factory=UserPreferences)
    version: int = CURRENT_VERSION

    def find_room(self, room_id: str) -> MeetingRoom | None:
        return next((r for r in self.rooms if r.id == room_id), None)

    def upsert_room(self, room: MeetingRoom) -> None:
        self.rooms = [r for r in self.rooms if r.id != room.id] + [room]


_STATE = TypeAdapter(AppState)


def dump_state(state: AppState) -> dict[str, Any]:
    """AppState → JSON-ready dict with camelCase keys."""
    return _STATE.dump_python(state, mode="json", by_alias=True)


def parse_state(data: dict[str, Any]) -> AppState:
    """camelCase dict → AppState. Raises pydantic.ValidationError."""
    return _STATE.validate_python(data)


# -- migrations ---------------------------------------------------------------

def _v0_to_v1(data: dict[str, Any], defaults: dict[str, Any]) -> dict[str, Any]:
    """Backfill missing top-level keys."""
    upgraded = dict(data)
    if not isinstance(upgraded.get("rooms"), list):
        upgraded["rooms"] = []
    if not isinstance(upgraded.get("availablePersonas"), list):
        upgraded["availablePersonas"] = copy.deepcopy(defaults["availablePersonas"])
    if not isinstance(upgraded.get("userPreferences"), dict):
        upgraded["userPreferences"] = copy.deepcopy(defaults["userPreferences"])
    return upgraded


def _upgrade_persona(persona: dict[str, Any]) -> dict[str, Any]:
    upgraded = dict(persona)
    name = upgraded.get("name") or upgraded.get("role") or upgraded.get("id") or "Unnamed persona"
    upgraded["name"] = name
    if not upgraded.get("role"):
        upgraded["role"] = name
    if not upgraded.get("id"):
        upgraded["id"] = name.lower().replace(" ", "-")
    upgraded.setdefault("isActive", False)
    upgraded.setdefault("ragFocus", [])
    upgraded.setdefault("temperature", 0.7)
    return upgraded


def _upgrade_statement(statement: dict[str, Any], fallback_id: str) -> dict[str, Any]:
    upgraded = dict(statement)
    upgraded.setdefault("id", fallback_id)
    upgraded.setdefault("personaId", "unknown")
    upgraded.setdefault("personaName", upgraded["personaId"])
    upgraded.setdefault("content", "")
    upgraded.setdefault("timestamp", 0.0)
    upgraded.setdefault("round", 1)
    upgraded.setdefault("tendencyScore", 5)
    if not isinstance(upgraded.get("tags"), list):
        upgraded["tags"] = []
    if not isinstance(upgraded.get("sources"), list):
        upgraded["sources"] = []
    return upgraded


def _upgrade_room(room: dict[str, Any], index: int, default_settings: dict[str, Any]) -> dict[str, Any]:
    upgraded = dict(room)
    upgraded.setdefault("id", f"room-{index}")
    upgraded["topic"] = upgraded.get("topic") or ""
    if not upgraded.get("name"):
        upgraded["name"] = upgraded["topic"][:40] or _UNTITLED_ROOM
    upgraded["settings"] = {**default_settings, **(upgraded.get("settings") or {})}
    upgraded["statements"] = [
        _upgrade_statement(s, f"{upgraded['id']}-{i}")
        for i, s in enumerate(upgraded.get("statements") or [])
        if isinstance(s, dict)
    ]
    upgraded["participants"] = [
        _upgrade_persona(p) for p in upgraded.get("participants") or [] if isinstance(p, dict)
    ]
    if isinstance(upgraded.get("moderator"), dict):
        upgraded["moderator"] = _upgrade_persona(upgraded["moderator"])
    consensus = upgraded.get("consensus")
    if not isinstance(consensus, dict) or any(k not in consensus for k in _CONSENSUS_KEYS):
        upgraded["consensus"] = None
    upgraded["searchResults"] = [
        {"query": "", **r} for r in upgraded.get("searchResults") or [] if isinstance(r, dict)
    ]
    upgraded.setdefault("isTopicGenerated", False)
    return upgraded


def _v1_to_v2(data: dict[str, Any], defaults: dict[str, Any]) -> dict[str, Any]:
    """Backfill room settings from the default meeting settings, required room/statement/persona fields."""
    default_settings = defaults["userPreferences"]["defaultMeetingSettings"]
    upgraded = dict(data)

    preferences = dict(upgraded.get("userPreferences") or {})
    preferences["defaultMeetingSettings"] = {
        **default_settings, **(preferences.get("defaultMeetingSettings") or {}),
    }
    upgraded["userPreferences"] = preferences

    upgraded["rooms"] = [
        _upgrade_room(room, i, default_settings)
        for i, room in enumerate(upgraded.get("rooms") or [])
        if isinstance(room, dict)
    ]
    upgraded["availablePersonas"] = [
        _upgrade_persona(p) for p in upgraded.get("availablePersonas") or [] if isinstance(p, dict)
    ]
    return upgraded


_MIGRATIONS: dict[int, Callable[[dict[str, Any], dict[str, Any]], dict[str, Any]]] = {
    0: _v0_to_v1,
    1: _v1_to_v2,
}


def migrate(data: dict[str, Any], defaults: AppState | None = None) -> dict[str, Any]:
    """Upgrade a raw envelope to CURRENT_VERSION. Unknown future versions pass through untouched."""
    version = data.get("version", 0)
    if not isinstance(version, int) or version < 0:
        version = 0
    if version > CURRENT_VERSION:
        logger.warning("State file version %d is newer than %d, loading as-is", version, CURRENT_VERSION)
        return data

    defaults_raw = dump_state(defaults or AppState())
    upgraded = data
    for step in range(version, CURRENT_VERSION):
        upgraded = _MIGRATIONS[step](upgraded, defaults_raw)
        logger.info("Migrated state from version %d to %d", step, step + 1)
    upgraded = dict(upgraded)
    upgraded["version"] = CURRENT_VERSION
    return upgraded


# -- load / save --------------------------------------------------------------

def default_state(
    personas: list[Persona] | None = None,
    preferences: UserPreferences | None = None,
) -> AppState:
    return AppState(
        rooms=[],
        available_personas=copy.deepcopy(personas or []),
        user_preferences=copy.deepcopy(preferences) if preferences else UserPreferences(),
    )


def load_state(path: Path, defaults: AppState | None = None) -> AppState:
    """Read and upgrade the state file; defaults when it does not exist.

    Raises:
        StateFileError: If the file is not valid JSON or not an envelope.
    """
    defaults = defaults or default_state()
    if not path.exists():
        logger.debug("No state file at %s, starting fresh", path)
        return copy.deepcopy(defaults)

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise StateFileError(f"Corrupt state file {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise StateFileError(f"State file {path} does not contain a JSON object")

    data = migrate(raw, defaults)
    try:
        return parse_state(data)
    except ValidationError as exc:
        raise StateFileError(f"Cannot decode state file {path}: {exc}") from exc


def save_state(state: AppState, path: Path) -> Path:
    """Write state as JSON via a temp file and atomic rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = dump_state(state)
    payload["version"] = CURRENT_VERSION

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    logger.debug("State saved to %s", path)
    return path


def new_meeting_settings(preferences: UserPreferences) -> MeetingSettings:
    """Fresh copy of the preferred settings for a new room."""
    return copy.deepcopy(preferences.default_meeting_settings)

"""Load settings.yaml into typed dataclasses. Checks API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from meeting_room.models import MeetingSettings, Persona, UserPreferences

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    base_url: str | None = None
    top_p: float | None = None
    top_k: int | None = None


@dataclass
class DefaultsConfig:
    provider: str
    language: str
    output_dir: Path
    state_file: Path
    turn_delay_sec: float = 1.0
    default_panel: list[str] = field(default_factory=list)


@dataclass
class GenerationConfig:
    persona_max_tokens: int = 800
    search_temperature: float = 0.3
    search_max_tokens: int = 500
    keyword_temperature: float = 0.4
    keyword_max_tokens: int = 200
    topic_temperature: float = 0.3
    topic_max_tokens: int = 100


@dataclass
class RetryConfig:
    max_attempts: int = 3
    base_delay_sec: float = 1.0


@dataclass
class CacheConfig:
    maxsize: int = 256
    persona_response_ttl_sec: float = 120.0
    topic_search_ttl_sec: float = 600.0
    topic_keywords_ttl_sec: float = 900.0


@dataclass
class InboxConfig:
    dir: Path
    archive_dir: Path


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    models: dict[str, ModelConfig]
    meeting: MeetingSettings
    generation: GenerationConfig
    retry: RetryConfig
    cache: CacheConfig
    inbox: InboxConfig
    personas: list[Persona] = field(default_factory=list)
    preferences: UserPreferences = field(default_factory=UserPreferences)
    available_providers: set[str] = field(default_factory=set)


def _parse_meeting(raw: dict) -> MeetingSettings:
    timeout = raw.get("timeout_per_round", 300_000)
    return MeetingSettings(
        max_rounds=int(raw.get("max_rounds", 5)),
        consensus_threshold=float(raw.get("consensus_threshold", 0.7)),
        timeout_per_round=int(timeout) if timeout else None,
        auto_save_interval=int(raw.get("auto_save_interval", 30)),
        allow_user_intervention=bool(raw.get("allow_user_intervention", True)),
    )


def _parse_persona(raw: dict) -> Persona:
    return Persona(
        id=str(raw["id"]),
        name=str(raw["name"]),
        role=str(raw.get("role", "")),
        identity=str(raw.get("identity", "")),
        prime_directive=str(raw.get("prime_directive", "")),
        tone_style=str(raw.get("tone_style", "")),
        default_bias=str(raw.get("default_bias", "")),
        rag_focus=[str(f) for f in raw.get("rag_focus", [])],
        temperature=float(raw.get("temperature", 0.7)),
        system_prompt=str(raw.get("system_prompt", "")),
        color=raw.get("color"),
        is_active=bool(raw.get("is_active", False)),
    )


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs providers with missing API keys but does not raise; callers check
    available_providers.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        provider=str(defaults_raw["provider"]),
        language=str(defaults_raw.get("language", "en")),
        output_dir=Path(defaults_raw["output_dir"]),
        state_file=Path(defaults_raw["state_file"]),
        turn_delay_sec=float(defaults_raw.get("turn_delay_sec", 1.0)),
        default_panel=list(defaults_raw.get("default_panel", [])),
    )

    meeting = _parse_meeting(raw.get("meeting", {}))
    generation = GenerationConfig(**raw.get("generation", {}))
    retry = RetryConfig(**raw.get("retry", {}))
    cache = CacheConfig(**raw.get("cache", {}))

    inbox_raw = raw.get("inbox", {})
    inbox = InboxConfig(
        dir=Path(inbox_raw.get("dir", "./inbox")),
        archive_dir=Path(inbox_raw.get("archive_dir", "./inbox/archive")),
    )

    personas = [_parse_persona(p) for p in raw.get("personas", [])]

    prefs_raw = raw.get("preferences", {})
    preferences = UserPreferences(
        theme=str(prefs_raw.get("theme", "auto")),
        language=str(prefs_raw.get("language", defaults.language)),
        auto_save=bool(prefs_raw.get("auto_save", True)),
        notifications_enabled=bool(prefs_raw.get("notifications_enabled", True)),
        default_meeting_settings=meeting,
    )

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in raw["models"].items():
        model_cfg = ModelConfig(
            name=provider_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            base_url=model_raw.get("base_url"),
            top_p=model_raw.get("top_p"),
            top_k=model_raw.get("top_k"),
        )
        models[provider_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s, set %s in .env",
                provider_name,
                model_raw["api_key_env"],
            )

    return AppConfig(
        defaults=defaults,
        models=models,
        meeting=meeting,
        generation=generation,
        retry=retry,
        cache=cache,
        inbox=inbox,
        personas=personas,
        preferences=preferences,
        available_providers=available_providers,
    )

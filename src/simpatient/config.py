"""
Runtime configuration for SimPatient.

Values come from environment variables, optionally seeded from a ``.env``
file in the project directory. ``CONFIG`` is the shared instance; call
``CONFIG.reload()`` to re-read the environment.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote_plus

from dotenv import load_dotenv

from simpatient.errors import ConfigError

PROJECT_DIR = Path(os.getenv("SIMPATIENT_PROJECT_DIR", Path.cwd()))

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:3001",
    "http://40.81.242.167",
    "https://40.81.242.167",
    "http://app.medvora.ai",
    "https://app.medvora.ai",
]

# ElevenLabs stock voices ("Adam" and "Sarah")
DEFAULT_VOICE_MALE = "pNInz6obpgDQGcFmaJgB"
DEFAULT_VOICE_FEMALE = "EXAVITQu4vr4xnSDxMaL"

TTS_PROVIDERS = ("elevenlabs", "litellm")

# (model, male voice, female voice) used when the TTS_* variables are unset
TTS_DEFAULTS = {
    "elevenlabs": ("eleven_turbo_v2_5", DEFAULT_VOICE_MALE, DEFAULT_VOICE_FEMALE),
    "litellm": ("openai/tts-1", "onyx", "nova"),
}


def _env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def _env_int(name: str, default: int) -> int:
    value = _env_str(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {value!r}")


def _env_float(name: str, default: float) -> float:
    value = _env_str(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}")


def _env_bool(name: str, default: bool) -> bool:
    value = _env_str(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: List[str]) -> List[str]:
    value = _env_str(name)
    if value is None:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


def _database_url_from_env() -> str:
    """DATABASE_URL wins; otherwise build a MySQL URL from the DB_* variables."""
    url = _env_str("DATABASE_URL")
    if url:
        return url

    host = _env_str("DB_HOST")
    name = _env_str("DB_NAME")
    if host and name:
        user = quote_plus(_env_str("DB_USER", "") or "")
        password = quote_plus(_env_str("DB_PASSWORD", "") or "")
        port = _env_int("DB_PORT", 3306)
        credentials = f"{user}:{password}@" if user else ""
        return f"mysql+pymysql://{credentials}{host}:{port}/{name}"

    return f"sqlite:///{PROJECT_DIR / 'simpatient.db'}"


@dataclass
class Settings:
    """All tunables of the service."""

    host: str = "0.0.0.0"
    port: int = 8001
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))

    openai_api_key: Optional[str] = None
    eleven_labs_api_key: Optional[str] = None

    database_url: str = "sqlite://"
    db_pool_max: int = 30
    db_pool_recycle: int = 60

    session_idle_timeout_seconds: float = 30 * 60
    session_sweep_interval_seconds: float = 5 * 60
    session_history_keeps_alive: bool = False
    max_audio_bytes: int = 50 * 1024 * 1024

    stt_model: str = "whisper-1"
    stt_language: str = "en"
    chat_model: str = "gpt-4o"
    chat_temperature: float = 0.8
    chat_max_tokens: int = 150

    tts_provider: str = "elevenlabs"
    tts_model: str = "eleven_turbo_v2_5"
    tts_voice_male: str = DEFAULT_VOICE_MALE
    tts_voice_female: str = DEFAULT_VOICE_FEMALE
    tts_stability: float = 0.5
    tts_similarity_boost: float = 0.75
    elevenlabs_base_url: str = "https://api.elevenlabs.io"

    upstream_timeout_seconds: float = 60.0

    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (after loading .env)."""
        load_dotenv(PROJECT_DIR / ".env")
        tts_provider = (_env_str("TTS_PROVIDER", "elevenlabs") or "").lower()
        tts_model, voice_male, voice_female = TTS_DEFAULTS.get(
            tts_provider, TTS_DEFAULTS["elevenlabs"]
        )
        return cls(
            host=_env_str("SIMPATIENT_HOST", "0.0.0.0"),
            port=_env_int("SIMPATIENT_PORT", _env_int("PORT", 8001)),
            cors_origins=_env_list("CORS_ORIGINS", DEFAULT_CORS_ORIGINS),
            openai_api_key=_env_str("OPENAI_API_KEY"),
            eleven_labs_api_key=_env_str("ELEVEN_LABS_API_KEY"),
            database_url=_database_url_from_env(),
            db_pool_max=_env_int("DB_POOL_MAX", 30),
            db_pool_recycle=_env_int("DB_POOL_RECYCLE", 60),
            session_idle_timeout_seconds=_env_float(
                "SESSION_IDLE_TIMEOUT_SECONDS", 30 * 60
            ),
            session_sweep_interval_seconds=_env_float(
                "SESSION_SWEEP_INTERVAL_SECONDS", 5 * 60
            ),
            session_history_keeps_alive=_env_bool("SESSION_HISTORY_KEEPS_ALIVE", False),
            max_audio_bytes=_env_int("MAX_AUDIO_BYTES", 50 * 1024 * 1024),
            stt_model=_env_str("STT_MODEL", "whisper-1"),
            stt_language=_env_str("STT_LANGUAGE", "en"),
            chat_model=_env_str("CHAT_MODEL", "gpt-4o"),
            chat_temperature=_env_float("CHAT_TEMPERATURE", 0.8),
            chat_max_tokens=_env_int("CHAT_MAX_TOKENS", 150),
            tts_provider=tts_provider,
            tts_model=_env_str("TTS_MODEL", tts_model),
            tts_voice_male=_env_str("TTS_VOICE_MALE", voice_male),
            tts_voice_female=_env_str("TTS_VOICE_FEMALE", voice_female),
            tts_stability=_env_float("TTS_STABILITY", 0.5),
            tts_similarity_boost=_env_float("TTS_SIMILARITY_BOOST", 0.75),
            elevenlabs_base_url=_env_str(
                "ELEVENLABS_BASE_URL", "https://api.elevenlabs.io"
            ),
            upstream_timeout_seconds=_env_float("UPSTREAM_TIMEOUT_SECONDS", 60.0),
            log_level=_env_str("LOG_LEVEL", "INFO"),
            log_file=_env_str("LOG_FILE"),
        )

    def reload(self) -> None:
        """Re-read the environment into this instance in place."""
        fresh = Settings.from_env()
        for f in fields(self):
            setattr(self, f.name, getattr(fresh, f.name))

    def validate(self) -> None:
        """Reject settings that cannot work together."""
        if self.session_idle_timeout_seconds <= 0:
            raise ConfigError("SESSION_IDLE_TIMEOUT_SECONDS must be positive")
        if self.session_sweep_interval_seconds <= 0:
            raise ConfigError("SESSION_SWEEP_INTERVAL_SECONDS must be positive")
        if self.session_sweep_interval_seconds >= self.session_idle_timeout_seconds:
            raise ConfigError(
                "SESSION_SWEEP_INTERVAL_SECONDS must be shorter than "
                "SESSION_IDLE_TIMEOUT_SECONDS"
            )
        if self.max_audio_bytes <= 0:
            raise ConfigError("MAX_AUDIO_BYTES must be positive")
        if self.upstream_timeout_seconds <= 0:
            raise ConfigError("UPSTREAM_TIMEOUT_SECONDS must be positive")
        if self.tts_provider not in TTS_PROVIDERS:
            raise ConfigError(
                f"TTS_PROVIDER must be one of {', '.join(TTS_PROVIDERS)}, "
                f"got {self.tts_provider!r}"
            )

    def missing_credentials(self) -> List[str]:
        """Names of API keys the configured providers need but don't have."""
        missing = []
        if not self.openai_api_key:
            missing.append("OPENAI_API_KEY")
        if self.tts_provider == "elevenlabs" and not self.eleven_labs_api_key:
            missing.append("ELEVEN_LABS_API_KEY")
        return missing

    def require_credentials(self) -> None:
        missing = self.missing_credentials()
        if missing:
            raise ConfigError(f"Missing API credentials: {', '.join(missing)}")


CONFIG = Settings.from_env()

import os
import json
from pathlib import Path
from typing import Literal, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

APP_NAME = "gbx-cli"

# XDG Paths - Explicit XDG resolution so ~/.config/ is used even on macOS
# (platformdirs would resolve to ~/Library/Application Support/ on macOS)
CONFIG_DIR = Path(os.getenv("XDG_CONFIG_HOME", Path.home() / ".config")) / APP_NAME
DATA_DIR = Path(os.getenv("XDG_DATA_HOME", Path.home() / ".local" / "share")) / APP_NAME
SETTINGS_FILE = CONFIG_DIR / "settings.json"
JOURNAL_DB = DATA_DIR / "gbx-cli.db"


def _ensure_dirs() -> None:
    """Create config and data directories (idempotent)."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    DATA_DIR.mkdir(parents=True, exist_ok=True)


class Settings(BaseModel):
    # Display
    theme: Literal["light", "dark"] = Field(default="light")

    # Execution
    # Seconds; None = wait forever
    timeout: Optional[float] = Field(default=None, gt=0)
    # Seconds the tree reaper waits for a signalled tree before force-killing
    kill_grace: float = Field(default=1.0, gt=0, le=30)

    # Execution journal (OTel spans persisted to SQLite)
    journal_enabled: bool = Field(default=True)
    history_last: int = Field(default=20, ge=1, le=1000)

    @field_validator("timeout", mode="before")
    @classmethod
    def _parse_timeout(cls, v: str | float | None) -> float | None:
        # "none" / "0" / "" in a settings file or env var mean unbounded
        if isinstance(v, str) and v.strip().lower() in ("", "none", "0"):
            return None
        if v == 0:
            return None
        return v

    @model_validator(mode='before')
    @classmethod
    def fill_from_env(cls, data: dict) -> dict:
        """Env vars override all file-based values (highest precedence layer)."""
        env_map = {
            "theme": "GBX_CLI_THEME",
            "timeout": "GBX_CLI_TIMEOUT",
            "kill_grace": "GBX_CLI_KILL_GRACE",
            "journal_enabled": "GBX_CLI_JOURNAL",
            "history_last": "GBX_CLI_HISTORY_LAST",
        }

        for field, env_var in env_map.items():
            val = os.getenv(env_var)
            if val:
                data[field] = val
        return data


def find_project_config() -> Path | None:
    """Return .gbx-cli/settings.json in cwd if it exists, else None."""
    candidate = Path.cwd() / ".gbx-cli" / "settings.json"
    return candidate if candidate.is_file() else None


def load_config() -> Settings:
    data: dict = {}

    # Layer 1: User config (~/.config/gbx-cli/settings.json)
    if SETTINGS_FILE.exists():
        with open(SETTINGS_FILE, "r") as f:
            try:
                data = json.load(f)
            except Exception as e:
                print(f"Error loading settings.json: {e}. Using defaults.")

    # Layer 2: Project config (<cwd>/.gbx-cli/settings.json) — shallow merge
    project_config = find_project_config()
    if project_config is not None:
        with open(project_config, "r") as f:
            try:
                data |= json.load(f)
            except Exception as e:
                print(f"Error loading project config {project_config}: {e}. Skipping.")

    # Layer 3: Env vars (handled by fill_from_env model_validator)
    return Settings.model_validate(data)


# Resolved project config path (None when no .gbx-cli/settings.json in cwd)
project_config_path: Path | None = find_project_config()

# Lazy settings singleton — directories created on first access, not at import time.
_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the global Settings instance, creating it on first call."""
    global _settings
    if _settings is None:
        _ensure_dirs()
        _settings = load_config()
    return _settings


def __getattr__(name: str):
    """Lazy module attribute — ``from gbx_cli.config import settings`` works without import-time side effects."""
    if name == "settings":
        return get_settings()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

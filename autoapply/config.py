"""Load agent settings from .env and the optional config/agent.yaml."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from autoapply.log import get_logger

log = get_logger(__name__)

load_dotenv()

PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent
CONFIG_DIR: Path = PROJECT_ROOT / "config"
SETTINGS_PATH: Path = CONFIG_DIR / "agent.yaml"
DATA_DIR: Path = PROJECT_ROOT / "data"

HOUR = 60 * 60


@dataclass
class AgentSettings:
    store_root: Path = DATA_DIR / "store"

    # OpenAI-compatible completion endpoint (Groq by default)
    llm_api_key: str = ""
    llm_base_url: str = "https://api.groq.com/openai/v1"
    llm_models: dict[str, str] = field(default_factory=lambda: {
        "fast": "llama-3.1-8b-instant",
        "balanced": "llama-3.3-70b-versatile",
        "powerful": "llama-3.3-70b-versatile",
    })
    llm_timeout: float = 30.0

    sources: list[str] = field(default_factory=lambda: ["remoteok", "hackernews", "remotive"])

    scheduler_tick: float = 60.0
    auto_search_interval: float = 1 * HOUR
    auto_apply_interval: float = 2 * HOUR
    apply_delay_range: tuple[float, float] = (120.0, 300.0)

    headless: bool = True

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = ""


def get_env(key: str, default: str = "") -> str:
    return os.environ.get(key, default).strip()


def _env_bool(key: str, default: bool) -> bool:
    raw = get_env(key)
    if not raw:
        return default
    return raw.lower() in ("1", "true", "yes", "on")


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        log.warning("Ignoring %s: expected a mapping at top level", path.name)
        return {}
    return data


def load_settings(path: Path | None = None) -> AgentSettings:
    """Build settings from YAML first, then let environment variables win."""
    data = _load_yaml(path or SETTINGS_PATH)
    settings = AgentSettings()

    for key, value in data.items():
        if not hasattr(settings, key):
            log.warning("Unknown setting %r in %s", key, (path or SETTINGS_PATH).name)
            continue
        if key == "store_root":
            value = Path(value)
        elif key == "apply_delay_range":
            value = (float(value[0]), float(value[1]))
        elif key == "llm_models":
            value = {**settings.llm_models, **value}
        setattr(settings, key, value)

    if get_env("AUTOAPPLY_STORE_ROOT"):
        settings.store_root = Path(get_env("AUTOAPPLY_STORE_ROOT"))
    settings.llm_api_key = get_env("GROQ_API_KEY") or get_env("LLM_API_KEY") or settings.llm_api_key
    settings.llm_base_url = get_env("LLM_BASE_URL", settings.llm_base_url)
    if get_env("GROQ_LLM_MODEL"):
        settings.llm_models["balanced"] = get_env("GROQ_LLM_MODEL")
    if get_env("AUTOAPPLY_SOURCES"):
        settings.sources = [s.strip() for s in get_env("AUTOAPPLY_SOURCES").split(",") if s.strip()]
    if get_env("SCHEDULER_TICK_SECONDS"):
        settings.scheduler_tick = float(get_env("SCHEDULER_TICK_SECONDS"))
    if get_env("APPLY_DELAY_MIN_SECONDS") and get_env("APPLY_DELAY_MAX_SECONDS"):
        settings.apply_delay_range = (
            float(get_env("APPLY_DELAY_MIN_SECONDS")),
            float(get_env("APPLY_DELAY_MAX_SECONDS")),
        )
    settings.headless = _env_bool("RUN_HEADLESS", settings.headless)

    settings.smtp_host = get_env("SMTP_HOST", settings.smtp_host)
    try:
        settings.smtp_port = int(get_env("SMTP_PORT", str(settings.smtp_port)))
    except ValueError:
        settings.smtp_port = 587
    settings.smtp_user = get_env("SMTP_USER", settings.smtp_user)
    settings.smtp_password = get_env("SMTP_PASSWORD", settings.smtp_password)
    settings.smtp_from = get_env("FROM_EMAIL", settings.smtp_from or settings.smtp_user)

    low, high = settings.apply_delay_range
    if low < 0 or high < low:
        raise ValueError(f"apply_delay_range must satisfy 0 <= min <= max, got {settings.apply_delay_range}")
    return settings


def ensure_dirs(settings: AgentSettings) -> None:
    settings.store_root.mkdir(parents=True, exist_ok=True)

"""
PagePilot Config Management

Unified configuration loading from multiple sources:
1. ~/.pagepilot/config.yaml (persistent, recommended)
2. .env file (project-local)
3. Environment variables (override)

Priority: ENV > .env > config.yaml. CLI flags are applied on top with
Config.update().
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

# ═══════════════════════════════════════════════════════════════════════════
# Config Paths
# ═══════════════════════════════════════════════════════════════════════════

PAGEPILOT_HOME = Path.home() / ".pagepilot"
CONFIG_FILE = PAGEPILOT_HOME / "config.yaml"
LOG_DIR = PAGEPILOT_HOME / "logs"


# ═══════════════════════════════════════════════════════════════════════════
# Known values
# ═══════════════════════════════════════════════════════════════════════════

CORE = "core"

KNOWN_CAPABILITIES = (
    CORE,
    "network",
    "storage",
    "javascript",
    "frames",
    "wait",
    "dom",
    "info",
)

BROWSERS = ("chromium", "firefox", "webkit")

DEFAULTS: dict[str, Any] = {
    "capabilities": list(KNOWN_CAPABILITIES),
    "browser": "chromium",
    "headless": True,
    "cdp_endpoint": None,
    "user_data_dir": None,
    "viewport": "1280x720",
    "keep_browser_open": False,
    "snapshots": True,
    "default_timeout_ms": 30000,
    "network_idle_timeout_ms": 5000,
    "network_idle_quiet_ms": 500,
    "host": "127.0.0.1",
    "port": 8931,
}

ENV_KEYS = {
    "PAGEPILOT_CAPABILITIES": "capabilities",
    "PAGEPILOT_BROWSER": "browser",
    "PAGEPILOT_HEADLESS": "headless",
    "PAGEPILOT_CDP_ENDPOINT": "cdp_endpoint",
    "PAGEPILOT_USER_DATA_DIR": "user_data_dir",
    "PAGEPILOT_KEEP_BROWSER_OPEN": "keep_browser_open",
    "PAGEPILOT_SNAPSHOTS": "snapshots",
    "PAGEPILOT_TIMEOUT_MS": "default_timeout_ms",
    "PAGEPILOT_HOST": "host",
    "PAGEPILOT_PORT": "port",
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def parse_capabilities(value: Any) -> frozenset[str]:
    """Comma string or list -> capability set. ``core`` is always included."""
    if value is None:
        return frozenset(KNOWN_CAPABILITIES)
    if isinstance(value, str):
        items = [v.strip() for v in value.split(",")]
    else:
        items = [str(v).strip() for v in value]
    caps = {c for c in items if c}
    unknown = sorted(caps - set(KNOWN_CAPABILITIES))
    if unknown:
        raise ValueError(
            f"Unknown capabilities: {', '.join(unknown)}. "
            f"Known: {', '.join(KNOWN_CAPABILITIES)}"
        )
    return frozenset(caps | {CORE})


def parse_viewport(value: str) -> tuple[int, int]:
    """'1280x720' -> (1280, 720)."""
    width, sep, height = str(value).lower().partition("x")
    if not sep:
        raise ValueError(f"Invalid viewport '{value}', expected WIDTHxHEIGHT")
    try:
        return int(width), int(height)
    except ValueError:
        raise ValueError(f"Invalid viewport '{value}', expected WIDTHxHEIGHT") from None


def _coerce(key: str, value: Any) -> Any:
    default = DEFAULTS.get(key)
    if key == "capabilities":
        return sorted(parse_capabilities(value))
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ValueError(f"Invalid boolean for {key}: {value!r}")
    if isinstance(default, int):
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid integer for {key}: {value!r}") from None
    if value == "":
        return None
    return value


# ═══════════════════════════════════════════════════════════════════════════
# Config Loader
# ═══════════════════════════════════════════════════════════════════════════


class Config:
    """Unified configuration management."""

    def __init__(self, config_file: Path | None = None):
        self.config_file = config_file or CONFIG_FILE
        self.data: dict[str, Any] = dict(DEFAULTS)
        self._load()

    def _load(self):
        """Load config from all sources (priority: ENV > .env > config.yaml)."""
        # 1. Load from ~/.pagepilot/config.yaml
        if self.config_file.exists():
            with open(self.config_file) as f:
                self.update(yaml.safe_load(f) or {})

        # 2. Load from .env file (project-local)
        self._load_dotenv()

        # 3. Environment variables override everything
        self._apply_env_overrides()

        self._validate()

    def _load_dotenv(self):
        """Load PAGEPILOT_* keys from .env in cwd or parent directories."""
        check = Path.cwd()
        for _ in range(5):
            env_file = check / ".env"
            if env_file.exists():
                for line in env_file.read_text().splitlines():
                    if "=" in line and not line.strip().startswith("#"):
                        key, _, value = line.partition("=")
                        key = key.strip()
                        value = value.strip().strip('"').strip("'")
                        if key in ENV_KEYS and key not in os.environ:
                            self.set(ENV_KEYS[key], value)
                return
            check = check.parent

    def _apply_env_overrides(self):
        for env_key, key in ENV_KEYS.items():
            if env_key in os.environ:
                self.set(key, os.environ[env_key])

    def _validate(self):
        if self.browser not in BROWSERS:
            raise ValueError(f"Unknown browser '{self.browser}'. Known: {', '.join(BROWSERS)}")
        parse_viewport(self.data["viewport"])

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def set(self, key: str, value: Any):
        """Set config value (in-memory only)."""
        self.data[key] = _coerce(key, value)

    def update(self, values: dict[str, Any]):
        """Apply several values; ``None`` means "not given" and is skipped."""
        for key, value in values.items():
            if value is not None:
                self.set(key, value)
        self._validate()

    # ── typed accessors ──

    @property
    def capabilities(self) -> frozenset[str]:
        return parse_capabilities(self.data["capabilities"])

    @property
    def browser(self) -> str:
        return str(self.data["browser"]).lower()

    @property
    def headless(self) -> bool:
        return self.data["headless"]

    @property
    def cdp_endpoint(self) -> str | None:
        return self.data["cdp_endpoint"]

    @property
    def user_data_dir(self) -> str | None:
        return self.data["user_data_dir"]

    @property
    def viewport(self) -> dict[str, int]:
        width, height = parse_viewport(self.data["viewport"])
        return {"width": width, "height": height}

    @property
    def keep_browser_open(self) -> bool:
        return self.data["keep_browser_open"]

    @property
    def snapshots(self) -> bool:
        return self.data["snapshots"]

    @property
    def default_timeout_ms(self) -> int:
        return self.data["default_timeout_ms"]

    @property
    def network_idle_timeout_ms(self) -> int:
        return self.data["network_idle_timeout_ms"]

    @property
    def network_idle_quiet_ms(self) -> int:
        return self.data["network_idle_quiet_ms"]

    @property
    def host(self) -> str:
        return self.data["host"]

    @property
    def port(self) -> int:
        return self.data["port"]


# ═══════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════


def load_config(config_file: Path | None = None) -> Config:
    """Load config from all sources."""
    return Config(config_file)

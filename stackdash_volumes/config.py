"""Client configuration for the block-storage lifecycle manager"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path.home() / ".config" / "stackdash" / "volumes.json"

# Timing defaults (seconds, except delete_max_polls which is a count)
DEFAULT_TIMINGS: Dict[str, float] = {
    "poll_interval": 2,
    "standard_detach_timeout": 20,
    "force_detach_timeout": 15,
    "settle_delay": 3,
    "delete_poll_interval": 1,
    "delete_max_polls": 30,
    "cleanup_settle_delay": 5,
    "request_timeout": 30,
}

# Config key -> environment variable
CREDENTIAL_ENV_VARS: Dict[str, str] = {
    "auth_url": "OS_AUTH_URL",
    "username": "OS_USERNAME",
    "password": "OS_PASSWORD",
    "project_name": "OS_PROJECT_NAME",
    "project_id": "OS_PROJECT_ID",
    "user_domain_name": "OS_USER_DOMAIN_NAME",
    "project_domain_name": "OS_PROJECT_DOMAIN_NAME",
    "region_name": "OS_REGION_NAME",
    "interface": "OS_INTERFACE",
    "compute_url": "STACKDASH_COMPUTE_URL",
    "volume_url": "STACKDASH_VOLUME_URL",
}

CREDENTIAL_DEFAULTS: Dict[str, Optional[str]] = {
    "user_domain_name": "Default",
    "project_domain_name": "Default",
    "interface": "public",
}


class Config:
    """
    Explicit client configuration: credentials, project scope, endpoints
    and timing budgets.

    Resolution order for every key: keyword argument, environment variable,
    config file, built-in default.
    """

    def __init__(self, config_file: Optional[Path] = None, **overrides: Any):
        self.config_file = Path(config_file) if config_file else DEFAULT_CONFIG_FILE
        self.file_config = self._load_file_config()

        for key, env_var in CREDENTIAL_ENV_VARS.items():
            value = self._resolve(key, env_var, overrides, CREDENTIAL_DEFAULTS.get(key))
            if isinstance(value, str) and key in ("auth_url", "compute_url", "volume_url"):
                value = value.rstrip("/")
            setattr(self, key, value)

        self.timings: Dict[str, float] = {}
        for key, default in DEFAULT_TIMINGS.items():
            env_var = f"STACKDASH_{key.upper()}"
            value = self._resolve(key, env_var, overrides, default)
            try:
                self.timings[key] = float(value)
            except (TypeError, ValueError):
                raise ConfigError(f"Invalid value for {key}: {value!r} (expected a number)")

        self.all_projects = _parse_bool(self._resolve("all_projects", "STACKDASH_ALL_PROJECTS", overrides, False))

    def _resolve(self, key: str, env_var: str, overrides: Dict[str, Any], default: Any) -> Any:
        if overrides.get(key) is not None:
            return overrides[key]
        if os.getenv(env_var):
            return os.getenv(env_var)
        if self.file_config.get(key) is not None:
            return self.file_config[key]
        return default

    def _load_file_config(self) -> Dict[str, Any]:
        """Load defaults from the JSON config file, if it exists"""
        if not self.config_file.exists():
            return {}

        try:
            with open(self.config_file, "r") as f:
                data = json.load(f)
        except Exception as e:
            logger.warning(f"Could not load config file {self.config_file}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Ignoring config file {self.config_file}: expected a JSON object")
            return {}
        return data

    def save(self, key: str, value: Any) -> None:
        """Persist a single key to the config file"""
        self.file_config[key] = value
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w") as f:
                json.dump(self.file_config, f, indent=2)
        except OSError as e:
            raise ConfigError(f"Could not save config to {self.config_file}: {e}")

    def missing_credentials(self) -> List[str]:
        """Names of the environment variables that still need a value"""
        missing = [
            CREDENTIAL_ENV_VARS[key]
            for key in ("auth_url", "username", "password")
            if not getattr(self, key)
        ]
        if not self.project_name and not self.project_id:
            missing.append("OS_PROJECT_NAME or OS_PROJECT_ID")
        return missing

    def require_credentials(self) -> None:
        """Raise ConfigError if the client cannot authenticate with this config"""
        missing = self.missing_credentials()
        if missing:
            raise ConfigError(
                "Missing credentials: " + ", ".join(missing) + ".\n"
                f"Set them in the environment or in {self.config_file}."
            )

    def timing(self, key: str) -> float:
        return self.timings[key]


def load_config(config_file: Optional[Path] = None, **overrides: Any) -> Config:
    """Load configuration from keyword overrides, environment and file"""
    return Config(config_file=config_file, **overrides)


def _parse_bool(value: Any) -> bool:
    """Interpret booleans written as strings in env vars or the config file"""
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)

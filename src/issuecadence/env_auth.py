"""Environment-based authentication for IssueCadence.

Resolves the Linear API key from environment variables, optionally
loading ``.env`` files first via python-dotenv.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .logging import get_logger

DEFAULT_DOTENV_LOCATIONS = (".env", ".env.local")


@dataclass
class EnvAuthConfig:
    """Configuration for environment-based authentication."""

    load_dotenv: bool = True
    dotenv_path: str | None = None
    api_key_var: str = "LINEAR_API_KEY"
    # API_KEY is what earlier automation scripts read; keep it as a fallback
    fallback_vars: tuple[str, ...] = field(default=("API_KEY", "LINEAR_TOKEN"))


class EnvironmentAuthManager:
    """Manages the tracker API key through environment variables and .env files."""

    def __init__(self, config: EnvAuthConfig):
        self.config = config
        self.logger = get_logger()
        self.dotenv_loaded: Path | None = None
        if config.load_dotenv:
            self._load_dotenv()

    def _load_dotenv(self) -> None:
        candidates = (
            [Path(self.config.dotenv_path)]
            if self.config.dotenv_path
            else [Path(p) for p in DEFAULT_DOTENV_LOCATIONS]
        )
        for env_file in candidates:
            if env_file.exists():
                # Existing environment variables take precedence over the file
                load_dotenv(str(env_file), override=False)
                self.dotenv_loaded = env_file
                self.logger.debug(f"Loaded environment variables from {env_file}")
                return

    def get_api_key(self) -> str | None:
        token = os.getenv(self.config.api_key_var)
        if token:
            return token
        for alt_var in self.config.fallback_vars:
            token = os.getenv(alt_var)
            if token:
                self.logger.debug(f"Found API key in {alt_var}")
                return token
        return None

    def get_auth_status(self) -> dict[str, object]:
        return {
            "api_key_present": self.get_api_key() is not None,
            "dotenv_loaded": str(self.dotenv_loaded) if self.dotenv_loaded else None,
        }


def create_env_auth_manager(
    load_dotenv: bool = True, dotenv_path: str | None = None
) -> EnvironmentAuthManager:
    return EnvironmentAuthManager(EnvAuthConfig(load_dotenv=load_dotenv, dotenv_path=dotenv_path))


__all__ = ["EnvAuthConfig", "EnvironmentAuthManager", "create_env_auth_manager"]

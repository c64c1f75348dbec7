"""promptqa configuration management."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from promptqa.models import (
    DEFAULT_ACTION_TIMEOUT_MS,
    DEFAULT_API_TIMEOUT,
    DEFAULT_ENVIRONMENT,
    DEFAULT_VIEWPORT,
    ENVIRONMENT_VAR,
    ENVIRONMENTS,
)


class PromptQAConfigError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


def current_environment() -> str:
    """Return the environment selected via ``PROMPTQA_ENV`` (default: parabank)."""
    return os.environ.get(ENVIRONMENT_VAR, "").strip() or DEFAULT_ENVIRONMENT


@dataclass
class PromptQAConfig:
    """Configuration for a promptqa run."""

    # Target
    environment: str = DEFAULT_ENVIRONMENT
    base_url: str = ENVIRONMENTS[DEFAULT_ENVIRONMENT]["base_url"]
    api_base_url: str = ENVIRONMENTS[DEFAULT_ENVIRONMENT]["api_base_url"]

    # Paths
    project_dir: Path = field(default_factory=lambda: Path(".promptqa"))
    prompts_dir: Path = field(default_factory=lambda: Path(".promptqa/prompts"))
    evidence_dir: Path = field(default_factory=lambda: Path(".promptqa/evidence"))

    # Behavior
    timeout_ms: int = DEFAULT_ACTION_TIMEOUT_MS
    api_timeout: float = DEFAULT_API_TIMEOUT
    headless: bool = True
    slow_mo: int = 0
    viewport: tuple[int, int] = DEFAULT_VIEWPORT
    self_healing: bool = False
    screenshot_on_failure: bool = True

    # Extra environments declared in config.yaml, merged over the built-ins
    environments: dict[str, dict[str, str]] = field(default_factory=dict)

    @classmethod
    def for_environment(cls, name: str) -> PromptQAConfig:
        """Build a default config targeting one of the built-in environments."""
        config = cls()
        config.use_environment(name)
        return config

    @classmethod
    def from_file(cls, config_path: Path) -> PromptQAConfig:
        """Load config from a YAML file."""
        if not config_path.exists():
            raise PromptQAConfigError(f"Config file not found: {config_path}")
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise PromptQAConfigError(f"Config file must be a YAML mapping: {config_path}")
        return cls._from_dict(data, config_path.parent)

    @classmethod
    def _from_dict(cls, data: dict[str, Any], project_dir: Path) -> PromptQAConfig:
        """Create config from a dictionary."""
        config = cls()
        config.project_dir = project_dir

        envs = data.get("environments") or {}
        if isinstance(envs, dict):
            config.environments = {str(k): dict(v or {}) for k, v in envs.items()}

        config.use_environment(str(data.get("environment", current_environment())))

        # Explicit URLs win over the environment's defaults
        if "base_url" in data:
            config.base_url = str(data["base_url"])
        if "api_base_url" in data:
            config.api_base_url = str(data["api_base_url"])

        if "prompts_dir" in data:
            config.prompts_dir = project_dir / data["prompts_dir"]
        else:
            config.prompts_dir = project_dir / "prompts"

        if "evidence_dir" in data:
            config.evidence_dir = project_dir / data["evidence_dir"]
        else:
            config.evidence_dir = project_dir / "evidence"

        if "timeout_ms" in data:
            config.timeout_ms = int(data["timeout_ms"])
        if "api_timeout" in data:
            config.api_timeout = float(data["api_timeout"])
        if "headless" in data:
            config.headless = bool(data["headless"])
        if "slow_mo" in data:
            config.slow_mo = int(data["slow_mo"])
        if "self_healing" in data:
            config.self_healing = bool(data["self_healing"])
        if "screenshot_on_failure" in data:
            config.screenshot_on_failure = bool(data["screenshot_on_failure"])
        if "viewport" in data:
            vp = data["viewport"]
            if isinstance(vp, dict):
                config.viewport = (vp.get("width", 1280), vp.get("height", 720))

        return config

    def use_environment(self, name: str) -> None:
        """Point base_url/api_base_url at a named environment."""
        known = {**ENVIRONMENTS, **self.environments}
        if name not in known:
            raise PromptQAConfigError(
                f"Unknown environment: {name}\n\n"
                f"Known environments: {', '.join(sorted(known))}"
            )
        env = known[name]
        self.environment = name
        self.base_url = env.get("base_url", "")
        # APIs served from the site root only need base_url
        self.api_base_url = env.get("api_base_url", self.base_url)

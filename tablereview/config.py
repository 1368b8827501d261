"""
Pipeline configuration.

Settings come from the `settings:` mapping of a YAML file; secrets come from
the environment (loaded from .env by the caller). The resulting ReviewConfig
is built once per run and handed to every component.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml

from .exceptions import ConfigurationError
from .prompts import (
    DEFAULT_TABLE_FILL_PROMPT,
    DEFAULT_TABLE_REVIEW_PROMPT,
    DEFAULT_TABLE_TEMPLATE,
    TEMPLATE_PLACEHOLDER,
)

PLACEHOLDER_API_KEYS = {"", "your_gemini_api_key_here"}

ENV_OVERRIDES = {
    "api_key": "GEMINI_API_KEY",
    "zotero_api_key": "ZOTERO_API_KEY",
    "zotero_library_id": "ZOTERO_LIBRARY_ID",
    "mineru_api_key": "MINERU_API_KEY",
}


@dataclass
class ReviewConfig:
    table_template: str = DEFAULT_TABLE_TEMPLATE
    fill_prompt: str = DEFAULT_TABLE_FILL_PROMPT
    review_prompt: str = ""
    fill_concurrency: int = 3
    provider: str = "google"
    model: str = "gemini-3-pro-preview"
    temperature: float = 0.2
    retry_attempts: int = 3
    api_key: Optional[str] = None
    zotero_library_id: Optional[str] = None
    zotero_library_type: str = "user"
    zotero_api_key: Optional[str] = None
    zotero_storage_dir: Optional[Path] = None
    mineru_api_key: Optional[str] = None
    use_mineru: bool = False
    mineru_poll_interval: float = 5.0
    mineru_max_polls: int = 60
    extra: dict = field(default_factory=dict)

    @property
    def effective_review_prompt(self) -> str:
        """Configured review prompt, or the built-in default when unset."""
        return self.review_prompt or DEFAULT_TABLE_REVIEW_PROMPT

    def validate(self) -> None:
        """
        Check settings that would make the run fail later.

        Raises:
            ConfigurationError: On the first problem found
        """
        if not self.api_key or self.api_key in PLACEHOLDER_API_KEYS:
            raise ConfigurationError(
                "GEMINI_API_KEY not found or not configured in .env file"
            )
        if TEMPLATE_PLACEHOLDER not in self.fill_prompt:
            raise ConfigurationError(
                f"Table fill prompt must contain the {TEMPLATE_PLACEHOLDER} placeholder"
            )
        if (
            isinstance(self.fill_concurrency, bool)
            or not isinstance(self.fill_concurrency, int)
            or self.fill_concurrency < 1
        ):
            raise ConfigurationError(
                f"fill_concurrency must be a positive integer, got {self.fill_concurrency!r}"
            )
        if self.use_mineru and not self.mineru_api_key:
            raise ConfigurationError("MinerU is enabled but MINERU_API_KEY is not set")


def load_config(config_path: Optional[Path] = None, env: Optional[dict] = None) -> ReviewConfig:
    """
    Build a ReviewConfig from a YAML file and environment variables.

    Args:
        config_path: YAML file with a `settings:` mapping (optional)
        env: Mapping to read secrets from (defaults to os.environ)

    Returns:
        Unvalidated ReviewConfig
    """
    env = os.environ if env is None else env
    settings = {}

    if config_path is not None and config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Config file {config_path} must contain a mapping")
        settings = raw.get("settings", raw) or {}

    known = {f.name for f in fields(ReviewConfig)} - {"extra"}
    kwargs = {k: v for k, v in settings.items() if k in known}
    extra = {k: v for k, v in settings.items() if k not in known}

    for name, env_var in ENV_OVERRIDES.items():
        value = env.get(env_var)
        if value:
            kwargs[name] = value

    # An empty template or prompt in YAML means "use the default"
    for name in ("table_template", "fill_prompt"):
        if name in kwargs and not kwargs[name]:
            del kwargs[name]

    if kwargs.get("zotero_storage_dir"):
        kwargs["zotero_storage_dir"] = Path(kwargs["zotero_storage_dir"]).expanduser()

    return ReviewConfig(extra=extra, **kwargs)


def write_default_config(output_path: Path) -> None:
    """Write a starter config/review.yaml with the default settings."""
    config = {
        "settings": {
            "provider": "google",
            "model": "gemini-3-pro-preview",
            "temperature": 0.2,
            "retry_attempts": 3,
            "fill_concurrency": 3,
            "zotero_library_type": "user",
            "zotero_storage_dir": None,
            "use_mineru": False,
            "table_template": DEFAULT_TABLE_TEMPLATE,
            "fill_prompt": DEFAULT_TABLE_FILL_PROMPT,
            "review_prompt": "",
        }
    }
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False, allow_unicode=True)

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

from biceplens_core.errors import ConfigurationError
from biceplens_core.models import MAX_SEVERITY, MIN_SEVERITY, Category

DEFAULT_CONFIG: dict = {
    "provider": "azure",
    "model": None,  # None = provider default; Azure uses the deployment name
    "best_practices": None,  # None = use built-in default; set to a path string to override
    "minimum_severity": MIN_SEVERITY,
    "categories": None,  # None = every category present in the best-practices document
    "concurrency_limit": 3,
    "max_retries": 3,
    "retry_base_delay": 1.0,
    "retry_max_delay": 30.0,
    "request_timeout": 60.0,
    "search_timeout": 10.0,
    "search_top_k": 2,
    "run_timeout": None,  # seconds for the whole review of one file; None = no limit
    "simple_output": False,
    "host": "azure",
    "file_patterns": ["*.bicep"],
    "max_chars_per_file": 40000,
}

BUILTIN_GUIDELINES_DIR = Path(__file__).parent / "guidelines"
_BUILTIN_DEFAULT = BUILTIN_GUIDELINES_DIR / "bicep-best-practices.md"

_ENV_KEYS = {
    "azure_openai_endpoint": "AZURE_OPENAI_ENDPOINT",
    "azure_openai_api_key": "AZURE_OPENAI_API_KEY",
    "azure_openai_deployment": "AZURE_OPENAI_DEPLOYMENT",
    "azure_openai_api_version": "AZURE_OPENAI_API_VERSION",
    "openai_api_key": "OPENAI_API_KEY",
    "anthropic_api_key": "ANTHROPIC_API_KEY",
    "azure_search_endpoint": "AZURE_SEARCH_ENDPOINT",
    "azure_search_key": "AZURE_SEARCH_ADMIN_KEY",
    "azure_search_index": "AZURE_SEARCH_INDEX",
    "github_token": "GITHUB_TOKEN",
    "azure_devops_pat": "AZURE_DEVOPS_PAT",
}


@dataclass(frozen=True)
class ReviewConfig:
    """Validated, immutable settings for one review run."""

    minimum_severity: int = MIN_SEVERITY
    categories_filter: Optional[frozenset] = None
    concurrency_limit: int = 3
    max_retries: int = 3
    simple_output: bool = False
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    run_timeout: Optional[float] = None
    max_chars_per_file: int = 40000


def load_config(
    config_path: str = ".biceplens.yml",
    cli_overrides: Optional[dict] = None,
    env_file: Optional[str] = ".env",
) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .biceplens.yml in the current directory
      3. CLI argument overrides

    Credentials are never read from the YAML file, only from the environment
    (optionally seeded from a .env file that does not override real variables).
    """
    config = {**DEFAULT_CONFIG, "file_patterns": list(DEFAULT_CONFIG["file_patterns"])}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ConfigurationError(f"{config_path} must contain a mapping, got {type(file_config).__name__}")
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    if env_file:
        load_dotenv(env_file, override=False)

    for key, env_var in _ENV_KEYS.items():
        config[key] = os.environ.get(env_var)

    return config


def _parse_categories(raw) -> Optional[frozenset]:
    if raw is None:
        return None
    if isinstance(raw, str):
        raw = [raw]
    names = list(raw)
    if not names:
        return None
    selected = set()
    for name in names:
        category = Category.from_name(str(name))
        if category is None:
            valid = ", ".join(c.value for c in Category)
            raise ConfigurationError(f"Unknown category {name!r}. Choose from: {valid}.")
        selected.add(category)
    return frozenset(selected)


def build_review_config(config: dict) -> ReviewConfig:
    """Validate the merged config dict into a ReviewConfig."""
    try:
        minimum_severity = int(config.get("minimum_severity", MIN_SEVERITY))
    except (TypeError, ValueError):
        raise ConfigurationError(f"minimum_severity must be an integer, got {config.get('minimum_severity')!r}")
    if not MIN_SEVERITY <= minimum_severity <= MAX_SEVERITY:
        raise ConfigurationError(f"minimum_severity must be between {MIN_SEVERITY} and {MAX_SEVERITY}")

    concurrency_limit = int(config.get("concurrency_limit", 3))
    if concurrency_limit < 1:
        raise ConfigurationError("concurrency_limit must be at least 1")

    max_retries = int(config.get("max_retries", 3))
    if max_retries < 0:
        raise ConfigurationError("max_retries cannot be negative")

    run_timeout = config.get("run_timeout")
    if run_timeout is not None and float(run_timeout) <= 0:
        raise ConfigurationError("run_timeout must be positive")

    return ReviewConfig(
        minimum_severity=minimum_severity,
        categories_filter=_parse_categories(config.get("categories")),
        concurrency_limit=concurrency_limit,
        max_retries=max_retries,
        simple_output=bool(config.get("simple_output", False)),
        retry_base_delay=float(config.get("retry_base_delay", 1.0)),
        retry_max_delay=float(config.get("retry_max_delay", 30.0)),
        run_timeout=float(run_timeout) if run_timeout is not None else None,
        max_chars_per_file=int(config.get("max_chars_per_file", 40000)),
    )


def load_best_practices(config: dict) -> str:
    """
    Load the best-practices document.

    If ``best_practices`` is set in config, loads from that path (relative to cwd).
    Otherwise falls back to the built-in default.
    """
    custom_path = config.get("best_practices")
    if custom_path:
        p = Path(custom_path)
        if not p.exists():
            raise ConfigurationError(f"Best practices file not found: {custom_path}")
        return p.read_text(encoding="utf-8")

    if _BUILTIN_DEFAULT.exists():
        return _BUILTIN_DEFAULT.read_text(encoding="utf-8")

    raise ConfigurationError("No best practices document configured and built-in default is missing.")

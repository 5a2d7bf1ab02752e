"""
Configuration management and loading.

Handles the YAML config file, environment overrides and defaults.
"""

import dataclasses
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, get_args, get_type_hints

import yaml

CONFIG_ENV_VAR = "JOBMATCH_CONFIG"
DEFAULT_CONFIG_PATH = "~/.jobmatch/config.yaml"

PROVIDER_LOCAL = "local"
PROVIDER_CLOUD = "cloud"

_ENV_PATTERN = re.compile(r"^\$\{([A-Za-z_][A-Za-z0-9_]*)\}$")


@dataclass(frozen=True)
class LocalLLMConfig:
    """Local (Ollama) provider settings."""
    base_url: str = "http://localhost:11434"
    model: str = "qwen2.5:14b"
    timeout: float = 120.0

    def __post_init__(self):
        if self.timeout <= 0:
            raise ValueError("llm.local.timeout must be > 0")


@dataclass(frozen=True)
class CloudLLMConfig:
    """Cloud (OpenAI-compatible) provider settings."""
    api_key: Optional[str] = "${LLM_API_KEY}"
    model: str = "gpt-4o-mini"
    base_url: str = "https://api.openai.com/v1"
    timeout: float = 60.0

    def __post_init__(self):
        if self.timeout <= 0:
            raise ValueError("llm.cloud.timeout must be > 0")


@dataclass(frozen=True)
class CommonLLMConfig:
    """Generation and retry settings shared by both providers."""
    temperature: float = 0.1
    max_tokens: int = 4096
    retry_times: int = 2
    retry_base_delay: float = 1.0
    retry_multiplier: float = 2.0

    def __post_init__(self):
        if self.retry_times < 0:
            raise ValueError("llm.common.retry_times must be >= 0")
        if self.retry_base_delay < 0:
            raise ValueError("llm.common.retry_base_delay must be >= 0")
        if self.retry_multiplier < 1:
            raise ValueError("llm.common.retry_multiplier must be >= 1")
        if self.max_tokens <= 0:
            raise ValueError("llm.common.max_tokens must be > 0")


@dataclass(frozen=True)
class LLMConfig:
    """Provider selection plus per-provider settings."""
    provider: str = PROVIDER_LOCAL
    local: LocalLLMConfig = field(default_factory=LocalLLMConfig)
    cloud: CloudLLMConfig = field(default_factory=CloudLLMConfig)
    common: CommonLLMConfig = field(default_factory=CommonLLMConfig)


@dataclass(frozen=True)
class StorageConfig:
    """Location and policy of the durable store."""
    db_path: str = "~/.jobmatch/jobmatch.db"
    cache_enabled: bool = True
    cache_ttl_days: int = 7

    def __post_init__(self):
        if self.cache_ttl_days <= 0:
            raise ValueError("storage.cache_ttl_days must be > 0")


@dataclass(frozen=True)
class MonitorConfig:
    """Job board monitoring settings."""
    search_keywords: str = "AI应用开发"
    city: str = "全国"
    page_limit: int = 3
    retention_days: int = 30
    only_today: bool = True

    def __post_init__(self):
        if self.page_limit <= 0:
            raise ValueError("monitor.page_limit must be > 0")
        if self.retention_days <= 0:
            raise ValueError("monitor.retention_days must be > 0")


@dataclass(frozen=True)
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"

    def __post_init__(self):
        if self.level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"logging.level is not a valid level: {self.level}")


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""
    llm: LLMConfig = field(default_factory=LLMConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def expand_env(value: Optional[str]) -> Optional[str]:
    """Resolve a ``${NAME}`` placeholder from the environment.

    Returns None when the variable is unset or empty; other values are
    returned unchanged.
    """
    if value is None:
        return None
    match = _ENV_PATTERN.match(value.strip())
    if not match:
        return value
    return os.environ.get(match.group(1)) or None


def expand_path(path: str) -> str:
    """Expand ``~`` and environment variables in a filesystem path."""
    return os.path.expandvars(os.path.expanduser(path))


def resolve_config_path(path: Optional[str] = None) -> Optional[Path]:
    """Find the config file to load.

    Lookup order: explicit path, the JOBMATCH_CONFIG environment variable,
    then ~/.jobmatch/config.yaml. Returns None when only defaults apply.

    Raises:
        FileNotFoundError: If an explicitly requested file doesn't exist
    """
    explicit = path or os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        config_path = Path(expand_path(explicit))
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {explicit}")
        return config_path

    default_path = Path(expand_path(DEFAULT_CONFIG_PATH))
    return default_path if default_path.exists() else None


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load and validate the application configuration.

    Unknown keys are rejected so that typos never silently fall back to
    defaults.

    Args:
        path: Optional path to a YAML config file

    Returns:
        Validated AppConfig (built-in defaults when no file is found)

    Raises:
        FileNotFoundError: If the requested config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = resolve_config_path(path)
    if config_path is None:
        return parse_config({})

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {config_path}: {e}")

    if raw_config is None:
        return parse_config({})
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration root must be a dictionary")

    return parse_config(raw_config)


def parse_config(raw_config: Dict[str, Any]) -> AppConfig:
    """Build an AppConfig from an already-parsed mapping."""
    _reject_unknown(raw_config, AppConfig, "config")

    llm_data = _section(raw_config, "llm", "llm")
    _reject_unknown(llm_data, LLMConfig, "llm")

    provider = llm_data.get("provider", PROVIDER_LOCAL)
    if not isinstance(provider, str):
        raise ValueError("'llm.provider' must be a string")
    if provider.lower() not in (PROVIDER_LOCAL, PROVIDER_CLOUD):
        raise ValueError(
            f"'llm.provider' must be one of: {[PROVIDER_LOCAL, PROVIDER_CLOUD]}"
        )

    cloud = _parse_section(_section(llm_data, "cloud", "llm.cloud"), CloudLLMConfig, "llm.cloud")
    cloud = dataclasses.replace(cloud, api_key=expand_env(cloud.api_key))

    llm = LLMConfig(
        provider=provider.lower(),
        local=_parse_section(_section(llm_data, "local", "llm.local"), LocalLLMConfig, "llm.local"),
        cloud=cloud,
        common=_parse_section(_section(llm_data, "common", "llm.common"), CommonLLMConfig, "llm.common"),
    )

    storage = _parse_section(_section(raw_config, "storage", "storage"), StorageConfig, "storage")
    storage = dataclasses.replace(storage, db_path=expand_path(storage.db_path))

    return AppConfig(
        llm=llm,
        storage=storage,
        monitor=_parse_section(_section(raw_config, "monitor", "monitor"), MonitorConfig, "monitor"),
        logging=_parse_section(_section(raw_config, "logging", "logging"), LoggingConfig, "logging"),
    )


def _section(data: Dict[str, Any], key: str, path: str) -> Dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ValueError(f"'{path}' must be a dictionary")
    return value


def _reject_unknown(data: Dict[str, Any], cls: type, path: str) -> None:
    allowed_keys = {f.name for f in dataclasses.fields(cls)}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")


def _parse_section(data: Dict[str, Any], cls: type, path: str) -> Any:
    """Parse a flat config section into its dataclass.

    Values are checked against the type of the field's default; null is
    accepted only for Optional fields. The dataclass' own __post_init__
    validates ranges.

    Args:
        data: Section data
        cls: Target dataclass
        path: Path for error messages

    Returns:
        Instance of cls

    Raises:
        ValueError: If a key is unknown or a value has the wrong type
    """
    _reject_unknown(data, cls, path)

    values = {}
    defaults = cls()
    hints = get_type_hints(cls)
    for name, value in data.items():
        if value is None and type(None) in get_args(hints[name]):
            values[name] = None
            continue
        expected = type(getattr(defaults, name))
        if expected is bool:
            if not isinstance(value, bool):
                raise ValueError(f"'{name}' in {path} must be a boolean")
        elif expected in (int, float):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"'{name}' in {path} must be a number")
            if expected is int and not float(value).is_integer():
                raise ValueError(f"'{name}' in {path} must be an integer")
            value = expected(value)
        elif not isinstance(value, str):
            raise ValueError(f"'{name}' in {path} must be a string")
        values[name] = value

    return cls(**values)

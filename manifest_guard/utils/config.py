"""
Configuration management for the manifest validation pipeline.

The pipeline is a pure compute library, so configuration only covers the
limits and thresholds it enforces plus the ambient logging settings. Values
are plain dataclasses validated in ``__post_init__``; ``PipelineConfig.from_env``
builds a configuration from ``MANIFEST_GUARD_*`` environment variables after
loading an optional ``.env`` file with python-dotenv.

Features:
- Environment-specific defaults (development, staging, production, testing)
- Complexity limits shared by the schema validator and the sanitizer
- Business rule tolerances (duration consistency, warning thresholds)
- Security scanner domain lists and decompression-bomb thresholds
- Result cache size and time-to-live
- Configuration validation with ConfigurationError on invalid values
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

import structlog
from dotenv import find_dotenv, load_dotenv


ENV_PREFIX = "MANIFEST_GUARD_"


class Environment(Enum):
    """Environment enumeration for configuration management"""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class ConfigurationError(Exception):
    """Custom exception for configuration-related errors"""
    pass


@dataclass
class LimitsConfig:
    """Complexity limits applied before and during validation"""
    max_depth: int = 64
    max_nodes: int = 500_000
    max_payload_bytes: int = 20 * 1024 * 1024

    def __post_init__(self):
        """Validate limits configuration"""
        for name in ('max_depth', 'max_nodes', 'max_payload_bytes'):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")


@dataclass
class BusinessRuleConfig:
    """Tolerances and warning thresholds for cross-field rules"""
    duration_tolerance_seconds: float = 60.0
    short_scene_seconds: float = 60.0
    max_quiz_questions_warning: int = 20

    def __post_init__(self):
        """Validate business rule configuration"""
        if self.duration_tolerance_seconds < 0:
            raise ConfigurationError("duration_tolerance_seconds may not be negative")
        if self.short_scene_seconds < 0:
            raise ConfigurationError("short_scene_seconds may not be negative")
        if self.max_quiz_questions_warning < 1:
            raise ConfigurationError("max_quiz_questions_warning must be at least 1")


@dataclass
class ScannerConfig:
    """Security scanner domain lists and archive thresholds"""
    blocked_domains: Tuple[str, ...] = ("evil.com", "malware.net", "phishing.org")
    shortener_domains: Tuple[str, ...] = (
        "bit.ly", "tinyurl.com", "t.co", "goo.gl", "ow.ly", "is.gd",
    )
    free_tlds: Tuple[str, ...] = ("tk", "ml", "ga", "cf", "gq")
    max_compression_ratio: float = 100.0
    max_uncompressed_bytes: int = 100 * 1024 * 1024

    def __post_init__(self):
        """Normalise domain lists and validate thresholds"""
        self.blocked_domains = tuple(d.strip().lower() for d in self.blocked_domains if d.strip())
        self.shortener_domains = tuple(d.strip().lower() for d in self.shortener_domains if d.strip())
        self.free_tlds = tuple(t.strip().lower().lstrip('.') for t in self.free_tlds if t.strip())
        if self.max_compression_ratio <= 1:
            raise ConfigurationError("max_compression_ratio must be greater than 1")
        if self.max_uncompressed_bytes < 1:
            raise ConfigurationError("max_uncompressed_bytes must be positive")


@dataclass
class SanitizerConfig:
    """Markup allowlist and fixed-point iteration bound for text cleaning"""
    allowed_tags: Tuple[str, ...] = (
        'p', 'br', 'strong', 'em', 'u', 'i', 'b',
        'ul', 'ol', 'li', 'blockquote', 'code',
    )
    max_rounds: int = 5

    def __post_init__(self):
        """Validate sanitizer configuration"""
        dangerous = {'script', 'style', 'iframe', 'object', 'embed', 'svg', 'math'}
        overlap = dangerous.intersection(tag.lower() for tag in self.allowed_tags)
        if overlap:
            raise ConfigurationError(f"Tags may not be allowlisted: {sorted(overlap)}")
        if self.max_rounds < 1:
            raise ConfigurationError("max_rounds must be at least 1")


@dataclass
class PipelineConfig:
    """
    Top-level pipeline configuration.

    Aggregates the component configurations together with the ambient
    logging and concurrency settings. A ``cache_size`` of zero disables the
    result cache.
    """
    environment: Environment = Environment.PRODUCTION
    log_level: str = "INFO"
    log_json: bool = True
    batch_workers: int = 8
    top_errors: int = 5
    cache_size: int = 256
    cache_ttl_seconds: float = 3600.0
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    rules: BusinessRuleConfig = field(default_factory=BusinessRuleConfig)
    scanner: ScannerConfig = field(default_factory=ScannerConfig)
    sanitizer: SanitizerConfig = field(default_factory=SanitizerConfig)

    def __post_init__(self):
        """Validate pipeline configuration"""
        if self.log_level.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ConfigurationError(f"Unknown log level: {self.log_level}")
        self.log_level = self.log_level.upper()
        if self.batch_workers < 1:
            raise ConfigurationError("batch_workers must be at least 1")
        if self.top_errors < 1:
            raise ConfigurationError("top_errors must be at least 1")
        if self.cache_size < 0:
            raise ConfigurationError("cache_size may not be negative")
        if self.cache_ttl_seconds <= 0:
            raise ConfigurationError("cache_ttl_seconds must be positive")

    @classmethod
    def for_environment(cls, environment: Environment, **overrides: Any) -> 'PipelineConfig':
        """Build a configuration with the defaults of the given environment."""
        defaults = dict(_ENVIRONMENT_DEFAULTS[environment])
        defaults.update(overrides)
        return cls(environment=environment, **defaults)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        load_env_file: bool = True,
        env_file: Optional[str] = None,
    ) -> 'PipelineConfig':
        """
        Load configuration from environment variables.

        Args:
            environ: Mapping to read from, defaults to ``os.environ``
            load_env_file: Whether to load a ``.env`` file first
            env_file: Path of the ``.env`` file, searched from the working directory if None

        Returns:
            PipelineConfig instance

        Raises:
            ConfigurationError: If a variable holds an invalid value
        """
        if load_env_file:
            load_dotenv(env_file or find_dotenv(usecwd=True), override=False)
        env = os.environ if environ is None else environ

        env_name = env.get(f"{ENV_PREFIX}ENV", Environment.PRODUCTION.value).lower()
        try:
            environment = Environment(env_name)
        except ValueError:
            logger.warning("Unknown environment, defaulting to production", environment=env_name)
            environment = Environment.PRODUCTION

        overrides: Dict[str, Any] = {}
        if f"{ENV_PREFIX}LOG_LEVEL" in env:
            overrides['log_level'] = env[f"{ENV_PREFIX}LOG_LEVEL"]
        if f"{ENV_PREFIX}LOG_JSON" in env:
            overrides['log_json'] = _parse_bool(env, f"{ENV_PREFIX}LOG_JSON")
        if f"{ENV_PREFIX}BATCH_WORKERS" in env:
            overrides['batch_workers'] = _parse_int(env, f"{ENV_PREFIX}BATCH_WORKERS")
        if f"{ENV_PREFIX}CACHE_SIZE" in env:
            overrides['cache_size'] = _parse_int(env, f"{ENV_PREFIX}CACHE_SIZE")
        if f"{ENV_PREFIX}CACHE_TTL" in env:
            overrides['cache_ttl_seconds'] = _parse_float(env, f"{ENV_PREFIX}CACHE_TTL")

        overrides['limits'] = LimitsConfig(
            max_depth=_parse_int(env, f"{ENV_PREFIX}MAX_DEPTH", LimitsConfig.max_depth),
            max_nodes=_parse_int(env, f"{ENV_PREFIX}MAX_NODES", LimitsConfig.max_nodes),
            max_payload_bytes=_parse_int(
                env, f"{ENV_PREFIX}MAX_PAYLOAD_BYTES", LimitsConfig.max_payload_bytes
            ),
        )
        overrides['rules'] = BusinessRuleConfig(
            duration_tolerance_seconds=_parse_float(
                env, f"{ENV_PREFIX}DURATION_TOLERANCE", BusinessRuleConfig.duration_tolerance_seconds
            ),
        )
        if f"{ENV_PREFIX}BLOCKED_DOMAINS" in env:
            overrides['scanner'] = ScannerConfig(
                blocked_domains=tuple(env[f"{ENV_PREFIX}BLOCKED_DOMAINS"].split(',')),
            )

        config = cls.for_environment(environment, **overrides)
        logger.debug("Loaded pipeline configuration", environment=environment.value)
        return config


_ENVIRONMENT_DEFAULTS: Dict[Environment, Dict[str, Any]] = {
    Environment.DEVELOPMENT: {'log_level': 'DEBUG', 'log_json': False},
    Environment.STAGING: {'log_level': 'INFO', 'log_json': True},
    Environment.PRODUCTION: {'log_level': 'INFO', 'log_json': True},
    Environment.TESTING: {
        'log_level': 'WARNING', 'log_json': False, 'batch_workers': 4, 'cache_size': 0,
    },
}

logger = structlog.get_logger("manifest_guard.config")


def _parse_int(env: Mapping[str, str], name: str, default: Optional[int] = None) -> int:
    raw = env.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _parse_float(env: Mapping[str, str], name: str, default: Optional[float] = None) -> float:
    raw = env.get(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


def _parse_bool(env: Mapping[str, str], name: str) -> bool:
    raw = env[name].strip().lower()
    if raw in ('true', '1', 'yes', 'on'):
        return True
    if raw in ('false', '0', 'no', 'off'):
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


def get_config(environment: Optional[str] = None) -> PipelineConfig:
    """
    Get configuration for the given environment name.

    Args:
        environment: Environment name, reads ``MANIFEST_GUARD_ENV`` if None

    Returns:
        PipelineConfig instance
    """
    if environment is None:
        return PipelineConfig.from_env()
    try:
        return PipelineConfig.for_environment(Environment(environment.lower()))
    except ValueError:
        raise ConfigurationError(f"Unsupported environment: {environment}")


__all__ = [
    'Environment',
    'ConfigurationError',
    'LimitsConfig',
    'BusinessRuleConfig',
    'ScannerConfig',
    'SanitizerConfig',
    'PipelineConfig',
    'get_config',
]

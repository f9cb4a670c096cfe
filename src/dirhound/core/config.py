"""
Scan configuration models.

All settings are validated once, up front. Invalid combinations raise
ConfigurationError; nothing is silently clamped.

Example:
    >>> config = ScanConfig.create(target="https://example.com", wordlist="words.txt")
    >>> config = ScanConfig.from_yaml("scan.yaml", threads=50)
"""

from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional, Tuple
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ConfigurationError


DEFAULT_USER_AGENT = "dirhound/1.0"

DEFAULT_USER_AGENTS: Tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_2 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Mobile/15E148",
    DEFAULT_USER_AGENT,
)


def _check_range(value: Optional[Tuple[int, int]], name: str) -> Optional[Tuple[int, int]]:
    if value is None:
        return value
    low, high = value
    if low < 0 or high < 0:
        raise ValueError(f"{name} bounds must be non-negative, got {low}-{high}")
    if low > high:
        raise ValueError(f"{name} minimum {low} is greater than maximum {high}")
    return value


class AuthConfig(BaseModel):
    """Static credentials sent with every request"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    basic: Optional[str] = None  # "user:password"
    bearer: Optional[str] = None
    header: Optional[str] = None  # raw Authorization header value

    @field_validator("basic")
    @classmethod
    def basic_has_separator(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and ":" not in value:
            raise ValueError("basic auth must be in user:password format")
        return value

    @model_validator(mode="after")
    def single_scheme(self) -> "AuthConfig":
        if sum(v is not None for v in (self.basic, self.bearer, self.header)) > 1:
            raise ValueError("only one of basic, bearer or header auth may be set")
        return self


class EvasionConfig(BaseModel):
    """Header rotation and request pacing (delays in milliseconds)"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    rotate_user_agent: bool = False
    rotate_ip_headers: bool = False
    user_agents: Tuple[str, ...] = DEFAULT_USER_AGENTS
    spoof_ips: Tuple[str, ...] = ()
    browser_headers: bool = False
    delay_min: int = Field(default=0, ge=0)
    delay_max: int = Field(default=0, ge=0)
    backoff_on_429: bool = False
    backoff_step: int = Field(default=500, ge=0)
    backoff_max: int = Field(default=10_000, ge=0)

    @model_validator(mode="after")
    def delay_order(self) -> "EvasionConfig":
        if self.delay_min > self.delay_max:
            raise ValueError(
                f"delay_min ({self.delay_min}ms) is greater than delay_max ({self.delay_max}ms)"
            )
        return self


class WildcardConfig(BaseModel):
    """Wildcard baseline settings"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = False
    probes: int = Field(default=4, ge=1, le=20)
    token_length: int = Field(default=16, ge=8, le=64)
    length_tolerance: float = Field(default=0.05, ge=0.0, le=1.0)


class FilterSpec(BaseModel):
    """
    Acceptance criteria, fixed for the whole session.

    Times are in milliseconds, sizes in bytes. Ranges are inclusive.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    exclude_codes: FrozenSet[int] = frozenset()
    only_success: bool = False
    size_range: Optional[Tuple[int, int]] = None
    max_time: Optional[int] = Field(default=None, ge=0)
    word_range: Optional[Tuple[int, int]] = None
    suppress_wildcards: bool = True

    @field_validator("size_range")
    @classmethod
    def valid_size_range(cls, value):
        return _check_range(value, "size range")

    @field_validator("word_range")
    @classmethod
    def valid_word_range(cls, value):
        return _check_range(value, "word range")

    @field_validator("exclude_codes")
    @classmethod
    def valid_codes(cls, value: FrozenSet[int]) -> FrozenSet[int]:
        bad = sorted(code for code in value if not 100 <= code <= 599)
        if bad:
            raise ValueError(f"invalid HTTP status codes: {bad}")
        return value


class ScanConfig(BaseModel):
    """Complete configuration of one scan session"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    target: str
    wordlist: Path
    threads: int = Field(default=20, ge=1, le=1000)
    timeout: float = Field(default=5.0, gt=0)
    retries: int = Field(default=0, ge=0, le=10)
    verify_tls: bool = True
    follow_redirects: bool = False
    cookie_jar: bool = False
    proxy: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    evasion: EvasionConfig = Field(default_factory=EvasionConfig)
    wildcard: WildcardConfig = Field(default_factory=WildcardConfig)
    filters: FilterSpec = Field(default_factory=FilterSpec)

    # Checkpointing
    resume_file: Optional[Path] = None
    state_file: Optional[Path] = None
    checkpoint_every: int = Field(default=100, ge=1)
    grace_period: float = Field(default=10.0, ge=0)

    @field_validator("target")
    @classmethod
    def valid_target(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"target must be an http(s) URL, got {value!r}")
        return value

    @field_validator("proxy")
    @classmethod
    def valid_proxy(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not urlparse(value).scheme:
            raise ValueError(f"proxy must be a URL, got {value!r}")
        return value

    @property
    def base_url(self) -> str:
        return self.target.rstrip("/")

    @property
    def checkpoint_path(self) -> Optional[Path]:
        """Where checkpoints are written; defaults to the resume file"""
        return self.state_file or self.resume_file

    def fingerprint_material(self) -> Dict[str, Any]:
        """
        Settings that decide which results a scan accepts.

        Threads, timeouts and evasion only change how fast results arrive,
        so they are left out and may differ between a run and its resume.
        """
        filters = self.filters.model_dump(mode="json")
        filters["exclude_codes"] = sorted(self.filters.exclude_codes)
        return {
            "target": self.base_url,
            "filters": filters,
            "wildcard": self.wildcard.model_dump(mode="json"),
        }

    @classmethod
    def create(cls, **values: Any) -> "ScanConfig":
        """Build a config, converting validation failures to ConfigurationError"""
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(_describe(e)) from e

    @classmethod
    def from_yaml(cls, path, **overrides: Any) -> "ScanConfig":
        """
        Load a config from a YAML file.

        Args:
            path: YAML file with ScanConfig fields at the top level
            **overrides: Values that take precedence over the file (nested
                sections are merged key by key)
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")

        return cls.create(**merge_settings(data, overrides))


def merge_settings(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override values on top of base settings"""
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_settings(merged[key], value)
        else:
            merged[key] = value
    return merged


def _describe(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item["loc"]) or "config"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)

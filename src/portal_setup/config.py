from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_REQUIRED_STRATEGIES = ["ad", "sms", "email"]


class SecretRef(BaseModel):
    """Reference to the Management API token without storing it in the config file.

    The token should be injected through an environment variable at runtime. An
    inline value is accepted for local development only.
    """

    env: Optional[str] = Field(
        default=None, description="Environment variable name containing the token"
    )
    value: Optional[str] = Field(
        default=None,
        description="Inline value (use only for local development; avoid in shared configs)",
    )

    model_config = ConfigDict(extra="forbid")

    def resolve(self) -> str:
        if self.env:
            env_value = os.getenv(self.env)
            if env_value:
                return env_value.strip()
            raise ValueError(f"Environment variable {self.env} is not set")
        if self.value:
            return self.value.strip()
        raise ValueError("No secret reference provided for resolution")


class RetrySettings(BaseModel):
    """Backoff applied to rate limited Management API calls.

    The defaults retry forever on 429 with a fixed five second wait.
    """

    delay_seconds: float = Field(default=5.0, gt=0, description="Fixed wait between attempts")
    max_attempts: Optional[int] = Field(
        default=None,
        ge=1,
        description="Upper bound on attempts per call. None retries until success.",
    )
    retry_on_status: List[int] = Field(default_factory=lambda: [429])

    model_config = ConfigDict(extra="forbid")


class SetupConfig(BaseModel):
    domain: str
    token: SecretRef
    portal_url: str
    output_dir: Path = Field(
        default_factory=Path.cwd,
        description="Directory receiving client.env and server.env",
    )
    request_timeout: float = Field(default=30.0, gt=0)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    required_strategies: List[str] = Field(
        default_factory=lambda: list(DEFAULT_REQUIRED_STRATEGIES)
    )

    model_config = ConfigDict(extra="forbid")

    @field_validator("domain")
    @classmethod
    def validate_domain(cls, value: str) -> str:
        return normalize_domain(value)

    @field_validator("portal_url")
    @classmethod
    def normalize_portal_url(cls, value: str) -> str:
        return normalize_web_url(value)

    @field_validator("required_strategies")
    @classmethod
    def ensure_strategies(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("At least one connection strategy is required")
        return value

    @property
    def management_api_base(self) -> str:
        return f"https://{self.domain}/api/v2"

    @property
    def management_audience(self) -> str:
        return f"https://{self.domain}/api/v2/"

    @classmethod
    def load(cls, path: Union[str, Path]) -> "SetupConfig":
        return cls(**cls.read_raw(path))

    @staticmethod
    def read_raw(path: Union[str, Path]) -> Dict[str, Any]:
        """Read the YAML mapping without validating it, so flags and prompts can fill gaps."""
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with config_path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}

        if not isinstance(raw, dict):
            raise ValueError(f"Configuration file {config_path} must contain a mapping")
        return raw


def normalize_web_url(value: str) -> str:
    """Validate an absolute http(s) URL and strip its trailing slash."""
    url = value.strip()
    parts = urlparse(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValueError("Please enter a valid http(s) url.")
    return url.rstrip("/")


def normalize_domain(value: str) -> str:
    """Reduce ``https://tenant.auth0.com/`` style input to the bare host."""
    domain = value.strip()
    for prefix in ("https://", "http://"):
        if domain.lower().startswith(prefix):
            domain = domain[len(prefix):]
    domain = domain.rstrip("/")
    if not domain or "/" in domain or " " in domain:
        raise ValueError("Please enter a valid domain in {tenant}.auth0.com format.")
    return domain

"""Configuration loading for dnsquorum.

Brief:
  Reads an optional YAML file, applies environment overrides and validates
  the result with a pydantic model.

Inputs:
  - YAML config path and an environment mapping

Outputs:
  - DnsQuorumConfig instances
"""

from __future__ import annotations

import os
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError


class ConfigError(ValueError):
    """Raised when the configuration file cannot be read or is invalid."""


class DnsQuorumConfig(BaseModel):
    """Brief: Typed configuration model.

    Inputs:
      - dns_public: Forwarder override ("tcp" or "tcp://A.B.C.D").
      - update_hostnames: Hostnames publishing the same TXT data, used for
        quorum lookups.
      - timeout: Per-query engine lifetime in seconds.
      - max_workers: Thread pool size for quorum fan-out.
      - logging: Mapping passed to init_logging().

    Outputs:
      - DnsQuorumConfig instance with normalized field types.
    """

    dns_public: Optional[str] = None
    update_hostnames: List[str] = Field(default_factory=list)
    timeout: float = Field(default=5.0, gt=0)
    max_workers: Optional[int] = Field(default=None, ge=1)
    logging: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        extra = "forbid"


def load_config(
    path: Optional[str] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> DnsQuorumConfig:
    """Brief: Load, override and validate configuration.

    Inputs:
      - path: Optional YAML file. None gives the defaults.
      - environ: Environment mapping (defaults to os.environ). DNS_PUBLIC
        here takes precedence over the file's dns_public.

    Outputs:
      - DnsQuorumConfig.

    Raises:
      - ConfigError when the file is unreadable, not a mapping, or fails
        validation.
    """

    environ = os.environ if environ is None else environ
    raw: Dict[str, Any] = {}
    if path:
        try:
            with open(path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"Failed to read config {path}: {exc}") from exc
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"Config {path} must be a mapping at the top level")
        raw = dict(loaded)

    env_public = environ.get("DNS_PUBLIC")
    if env_public:
        raw["dns_public"] = env_public

    try:
        return DnsQuorumConfig(**raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc

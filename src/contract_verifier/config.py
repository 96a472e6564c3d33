from __future__ import annotations

import os
from datetime import date
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from contract_verifier import get_config_dir
from contract_verifier.contracts.broker import ConsumerVersionSelector
from contract_verifier.exceptions import ConfigError
from contract_verifier.libraries.common.logging import get_logger

logger = get_logger(__name__)

# env var name -> (section, field)
ENV_VAR_OVERRIDES = {
    "PACT_BROKER_BASE_URL": ("broker", "base_url"),
    "PACT_BROKER_TOKEN": ("broker", "token"),
    "PACT_BROKER_USERNAME": ("broker", "username"),
    "PACT_BROKER_PASSWORD": ("broker", "password"),
    "PACT_PROVIDER_VERSION": ("publish", "provider_version"),
    "PACT_PROVIDER_BRANCH": ("publish", "provider_branch"),
    "PACT_PUBLISH_VERIFICATION_RESULTS": ("publish", "enabled"),
}


class ListenerConfig(BaseModel):
    app: str
    host: str = "127.0.0.1"
    port: int = Field(default=0, ge=0, le=65535)
    readiness_path: str | None = "/"
    startup_timeout: float = Field(default=10, gt=0)


class ProviderStatesListenerConfig(ListenerConfig):
    path: str = "/provider-states"
    teardown: bool = False


class SelectorConfig(BaseModel):
    main_branch: bool | None = None
    matching_branch: bool | None = None
    deployed_or_released: bool | None = None
    deployed: bool | None = None
    released: bool | None = None
    branch: str | None = None
    tag: str | None = None
    latest: bool | None = None
    consumer: str | None = None
    environment: str | None = None

    def to_selector(self) -> ConsumerVersionSelector:
        return ConsumerVersionSelector(**self.model_dump())


class BrokerConfig(BaseModel):
    base_url: str | None = None
    token: str | None = None
    username: str | None = None
    password: str | None = None
    consumer_version_selectors: list[SelectorConfig] = Field(
        default_factory=lambda: [
            SelectorConfig(deployed_or_released=True),
            SelectorConfig(main_branch=True),
            SelectorConfig(matching_branch=True),
        ]
    )
    enable_pending: bool = True
    include_wip_pacts_since: date | None = None


class PublishConfig(BaseModel):
    enabled: bool = False
    provider_version: str | None = None
    provider_branch: str | None = None
    build_url: str | None = None

    @model_validator(mode="after")
    def _check_version(self) -> PublishConfig:
        if self.enabled and not self.provider_version:
            raise ValueError("provider_version is required to publish verification results")
        return self


class VerifierConfig(BaseModel):
    provider_name: str
    provider: ListenerConfig
    provider_states: ProviderStatesListenerConfig
    pact_dir: Path | None = None
    consumer: str | None = None
    broker: BrokerConfig = Field(default_factory=BrokerConfig)
    publish: PublishConfig = Field(default_factory=PublishConfig)
    custom_headers: dict[str, str] = Field(default_factory=dict)
    request_timeout: float = Field(default=30, gt=0)
    run_timeout: float | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _check_source(self) -> VerifierConfig:
        if not self.pact_dir and not self.broker.base_url:
            raise ValueError("Either pact_dir or broker.base_url must be configured")
        return self

    @property
    def use_broker(self) -> bool:
        """Pacts are fetched from the broker unless a pact directory is given"""
        return self.pact_dir is None and self.broker.base_url is not None


def load_config(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
    environ: dict[str, str] | None = None,
) -> VerifierConfig:
    """Load the verifier config

    Values are resolved in this order (later wins): the config file, environment variables, explicit overrides

    :param config_path: Path to a YAML config. Defaults to verifier.yaml in the config directory
    :param overrides: Values to override. Nested sections are merged (eg. {"publish": {"enabled": True}})
    :param environ: Environment variables. Defaults to os.environ
    """
    config_path = Path(config_path or get_config_dir() / "verifier.yaml")
    try:
        cfg = yaml.safe_load(config_path.read_text()) or {}
    except OSError as e:
        raise ConfigError(f"Failed to read config {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
    if not isinstance(cfg, dict):
        raise ConfigError(f"{config_path} must contain a mapping")

    environ = os.environ if environ is None else environ
    for env_var, (section, key) in ENV_VAR_OVERRIDES.items():
        if value := environ.get(env_var):
            cfg.setdefault(section, {})[key] = value
    _deep_merge(cfg, overrides or {})

    try:
        config = VerifierConfig.model_validate(cfg)
    except ValidationError as e:
        raise ConfigError(f"Invalid verifier config ({config_path}):\n{e}") from e
    logger.debug(f"Loaded verifier config from {config_path}")
    return config


def _deep_merge(base: dict[str, Any], overrides: dict[str, Any]) -> None:
    for k, v in overrides.items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            _deep_merge(base[k], v)
        elif v is not None:
            base[k] = v

"""Deployment configuration.

Settings come from three layers, lowest precedence first:

    ~/.ethstaking/defaults.toml   [deployment] table
    ./ethstaking.toml             [deployment] table
    CDK context                   cdk.json or ``cdk synth -c key=value``

The three client flags are required and must be literally the strings
"yes" or "no". Everything is validated here, before any construct exists.
"""

from __future__ import annotations

import ipaddress
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any

from loguru import logger

from ethstaking.constants import (
    DEFAULT_AVAILABILITY_ZONE,
    DEFAULT_DASHBOARD_NAME,
    DEFAULT_VPC_CIDR,
    ContextKey,
)
from ethstaking.exceptions import ConfigurationError

type RawConfig = dict[str, Any]

GLOBAL_CONFIG_PATH = Path.home() / ".ethstaking" / "defaults.toml"
PROJECT_CONFIG_NAME = "ethstaking.toml"

log = logger.bind(component="config")


class Toggle(StrEnum):
    """The only two accepted flag values."""

    YES = "yes"
    NO = "no"


@dataclass(frozen=True, slots=True)
class DeploymentFlags:
    """Which clients this stack hosts.

    Args:
        self_host_execution: Run an execution client, or use a hosted RPC provider.
        self_host_consensus: Run a beacon node, or use an external one.
        validator_with_consensus: Run the validator client on the beacon node host.
    """

    self_host_execution: Toggle
    self_host_consensus: Toggle
    validator_with_consensus: Toggle


@dataclass(frozen=True, slots=True)
class StakingSettings:
    """Validated deployment settings.

    Args:
        flags: Client hosting flags.
        availability_zone: The single zone the VPC spans.
        vpc_cidr: VPC IPv4 range.
        key_pair_name: EC2 key pair for SSH. None disables key-based SSH.
        alarm_email: Subscribed to the alarm topic if set.
        dashboard_name: CloudWatch dashboard name.
    """

    flags: DeploymentFlags
    availability_zone: str = DEFAULT_AVAILABILITY_ZONE
    vpc_cidr: str = DEFAULT_VPC_CIDR
    key_pair_name: str | None = None
    alarm_email: str | None = None
    dashboard_name: str = DEFAULT_DASHBOARD_NAME


def parse_toggle(key: str, raw: object) -> Toggle:
    """Parse one flag value.

    Raises:
        ConfigurationError: If the value is missing or not "yes"/"no".
    """
    match raw:
        case None:
            raise ConfigurationError(
                f"Missing required setting '{key}'. Pass it with `cdk synth -c {key}=yes|no` "
                f"or set it in {PROJECT_CONFIG_NAME}."
            )
        case str() as value if value in Toggle:
            return Toggle(value)
        case _:
            raise ConfigurationError(
                f"Invalid value {raw!r} for '{key}'. Valid: {', '.join(Toggle)}"
            )


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RawConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_path = (project_dir or Path.cwd()) / PROJECT_CONFIG_NAME
    project_cfg = _read_toml(project_path)

    merged = _deep_merge(global_cfg, project_cfg)
    merged.setdefault("deployment", {})
    return merged


def _optional_str(key: str, raw: object) -> str | None:
    match raw:
        case None | "":
            return None
        case str() as value:
            return value
        case _:
            raise ConfigurationError(f"Setting '{key}' must be a string, got {raw!r}")


def _vpc_cidr(raw: str) -> str:
    try:
        network = ipaddress.ip_network(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid '{ContextKey.VPC_CIDR}': {e}") from e
    if network.version != 4:
        raise ConfigurationError(f"'{ContextKey.VPC_CIDR}' must be an IPv4 range, got {raw}")
    return str(network)


def load_settings(
    context: Mapping[str, object],
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> StakingSettings:
    """Merge TOML files and CDK context into validated settings.

    Args:
        context: CDK context values by key. None means unset.
        project_dir: Directory holding ethstaking.toml. Defaults to cwd.
        global_path: Global defaults file. Defaults to ~/.ethstaking/defaults.toml.

    Raises:
        ConfigurationError: On missing flags, invalid values or unknown keys.
    """
    raw = dict(load_config(project_dir=project_dir, global_path=global_path)["deployment"])

    known = {str(k) for k in ContextKey}
    unknown = set(raw) - known
    if unknown:
        raise ConfigurationError(
            f"Unknown deployment settings: {', '.join(sorted(unknown))}. Valid: {', '.join(sorted(known))}"
        )
    raw.update({k: v for k, v in context.items() if k in known and v is not None})

    flags = DeploymentFlags(
        self_host_execution=parse_toggle(ContextKey.SELF_HOST_EXECUTION, raw.get(ContextKey.SELF_HOST_EXECUTION)),
        self_host_consensus=parse_toggle(ContextKey.SELF_HOST_CONSENSUS, raw.get(ContextKey.SELF_HOST_CONSENSUS)),
        validator_with_consensus=parse_toggle(
            ContextKey.VALIDATOR_WITH_CONSENSUS, raw.get(ContextKey.VALIDATOR_WITH_CONSENSUS)
        ),
    )

    settings = StakingSettings(
        flags=flags,
        availability_zone=(
            _optional_str(ContextKey.AVAILABILITY_ZONE, raw.get(ContextKey.AVAILABILITY_ZONE))
            or DEFAULT_AVAILABILITY_ZONE
        ),
        vpc_cidr=_vpc_cidr(
            _optional_str(ContextKey.VPC_CIDR, raw.get(ContextKey.VPC_CIDR)) or DEFAULT_VPC_CIDR
        ),
        key_pair_name=_optional_str(ContextKey.KEY_PAIR_NAME, raw.get(ContextKey.KEY_PAIR_NAME)),
        alarm_email=_optional_str(ContextKey.ALARM_EMAIL, raw.get(ContextKey.ALARM_EMAIL)),
        dashboard_name=(
            _optional_str(ContextKey.DASHBOARD_NAME, raw.get(ContextKey.DASHBOARD_NAME))
            or DEFAULT_DASHBOARD_NAME
        ),
    )
    log.debug("Loaded settings: {settings}", settings=settings)
    return settings

"""Deployment plan - which nodes the flags ask for.

Flags are closed enums, so every combination is handled below and the
type checker flags a missing one.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import assert_never

from ethstaking import roles
from ethstaking.config import DeploymentFlags, Toggle
from ethstaking.exceptions import ConfigurationError, UnsupportedConfigurationError
from ethstaking.spec import NodeSpec

EXECUTION_UNSUPPORTED = "Self-hosted execution client is not supported yet"


@dataclass(frozen=True, slots=True)
class DeploymentPlan:
    """Nodes to build, in dashboard order (execution, consensus, validator)."""

    nodes: tuple[NodeSpec, ...]

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(node.name for node in self.nodes)


def plan_deployment(flags: DeploymentFlags) -> DeploymentPlan:
    """Resolve flags into the nodes to build.

    Raises:
        UnsupportedConfigurationError: If a self-hosted execution client is requested.
        ConfigurationError: If the validator should share a host with a
            beacon node that is not self-hosted.
    """
    match flags.self_host_execution:
        case Toggle.YES:
            # The execution node spec is complete (roles.execution_client) but
            # a hosted RPC provider is the only supported setup for now.
            raise UnsupportedConfigurationError(EXECUTION_UNSUPPORTED)
        case Toggle.NO:
            pass
        case _ as unreachable:
            assert_never(unreachable)

    match (flags.self_host_consensus, flags.validator_with_consensus):
        case (Toggle.YES, Toggle.YES):
            nodes = (roles.consensus_client(with_validator=True),)
        case (Toggle.YES, Toggle.NO):
            nodes = (roles.consensus_client(), roles.validator_client())
        case (Toggle.NO, Toggle.NO):
            nodes = (roles.validator_client(),)
        case (Toggle.NO, Toggle.YES):
            raise ConfigurationError(
                "The validator cannot run with the consensus client when the consensus "
                "client is not self-hosted"
            )
        case _ as unreachable:
            assert_never(unreachable)

    return DeploymentPlan(nodes=nodes)

from __future__ import annotations

import aws_cdk as cdk
import pytest

from ethstaking.config import DeploymentFlags, StakingSettings, Toggle


def make_settings(
    execution: str = "no",
    consensus: str = "yes",
    validator_with_consensus: str = "yes",
    **kwargs,
) -> StakingSettings:
    return StakingSettings(
        flags=DeploymentFlags(
            self_host_execution=Toggle(execution),
            self_host_consensus=Toggle(consensus),
            validator_with_consensus=Toggle(validator_with_consensus),
        ),
        **kwargs,
    )


@pytest.fixture
def app() -> cdk.App:
    return cdk.App()


@pytest.fixture
def stack(app: cdk.App) -> cdk.Stack:
    return cdk.Stack(app, "TestStack")

"""ethstaking - AWS infrastructure for self-hosted Ethereum staking.

Declares a dual-stack VPC, spot-backed client nodes and their CloudWatch
monitoring as a CDK app.

Example:

    import aws_cdk as cdk
    from ethstaking import EthStakingStack, load_settings

    app = cdk.App()
    settings = load_settings({
        "selfHostExecutionClient": "no",
        "selfHostConsensusClient": "yes",
        "validatorWithConsensusClient": "yes",
    })
    EthStakingStack(app, "EthStaking", settings=settings)
    app.synth()
"""

from loguru import logger

from ethstaking.config import DeploymentFlags, StakingSettings, Toggle, load_settings
from ethstaking.exceptions import (
    ConfigurationError,
    EthStakingError,
    UnsupportedConfigurationError,
)
from ethstaking.network import DualStackVpc
from ethstaking.node import MonitoredSpotNode
from ethstaking.plan import DeploymentPlan, plan_deployment
from ethstaking.spec import DataVolume, Ingress, LogMetric, LogSource, NodeSpec, Reach, Threshold
from ethstaking.stack import EthStakingStack

# Library behavior: silent until the app enables it.
logger.disable("ethstaking")

__all__ = [
    # Stack
    "EthStakingStack",
    "DualStackVpc",
    "MonitoredSpotNode",
    # Configuration
    "load_settings",
    "StakingSettings",
    "DeploymentFlags",
    "Toggle",
    "plan_deployment",
    "DeploymentPlan",
    # Node specs
    "NodeSpec",
    "Ingress",
    "Reach",
    "DataVolume",
    "LogSource",
    "LogMetric",
    "Threshold",
    # Errors
    "EthStakingError",
    "ConfigurationError",
    "UnsupportedConfigurationError",
]

__version__ = "0.1.0"

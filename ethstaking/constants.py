"""Centralized constants and enums for ethstaking.

Log contracts, metric namespaces and default sizes live here so the role
definitions and the node construct agree on them.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

# =============================================================================
# Context keys
# =============================================================================


class ContextKey(StrEnum):
    """CDK context / TOML keys read at synth time."""

    SELF_HOST_EXECUTION = "selfHostExecutionClient"
    SELF_HOST_CONSENSUS = "selfHostConsensusClient"
    VALIDATOR_WITH_CONSENSUS = "validatorWithConsensusClient"
    AVAILABILITY_ZONE = "availabilityZone"
    VPC_CIDR = "vpcCidr"
    KEY_PAIR_NAME = "keyPairName"
    ALARM_EMAIL = "alarmEmail"
    DASHBOARD_NAME = "dashboardName"


# =============================================================================
# AWS Resource Tags
# =============================================================================


class EthStakingTag(StrEnum):
    """Resource tag keys applied by ethstaking."""

    MANAGED = "ethstaking:managed"
    ROLE = "ethstaking:role"


# =============================================================================
# CloudWatch namespaces
# =============================================================================


class Namespace(StrEnum):
    """CloudWatch namespaces of metrics published by AWS or the agent."""

    EC2 = "AWS/EC2"
    EBS = "AWS/EBS"
    AUTOSCALING = "AWS/AutoScaling"
    CW_AGENT = "CWAgent"


# Permissions needed by the CloudWatch agent running on every node.
CLOUDWATCH_AGENT_ACTIONS: Final = (
    "cloudwatch:PutMetricData",
    "ec2:DescribeTags",  # ec2tagger
    "logs:CreateLogGroup",
    "logs:CreateLogStream",
    "logs:DescribeLogStreams",
    "logs:PutLogEvents",
    "logs:PutRetentionPolicy",
)

# =============================================================================
# Defaults
# =============================================================================

DEFAULT_AVAILABILITY_ZONE: Final = "us-west-2b"  # A1 instances are not available in us-west-2a
DEFAULT_VPC_CIDR: Final = "192.168.0.0/24"
DEFAULT_DASHBOARD_NAME: Final = "EthStaking"
DEFAULT_STACK_ID: Final = "EthStaking"

ROOT_DEVICE_NAME: Final = "/dev/xvda"
DEFAULT_ROOT_VOLUME_GIB: Final = 20  # over the 8 GB AMI default
DATA_DEVICE: Final = "nvme1n1"
DATA_FSTYPE: Final = "ext4"

IPV6_SUBNET_PREFIX: Final = 64
IPV6_ANY: Final = "::/0"

DASHBOARD_ROW_WIDTH: Final = 18
NETWORK_OUT_MIN_BYTES: Final = 1_000_000
DISK_USED_MAX_PERCENT: Final = 95

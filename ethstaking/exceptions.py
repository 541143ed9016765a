"""Exception hierarchy for ethstaking.

All errors raised while composing the stack inherit from EthStakingError.
Provisioning failures are reported by CloudFormation, not by this package.
"""

from __future__ import annotations


class EthStakingError(Exception):
    """Base exception for all ethstaking errors."""


class ConfigurationError(EthStakingError):
    """Raised for invalid configuration or missing required settings."""


class UnsupportedConfigurationError(ConfigurationError):
    """Raised for a flag combination that is deliberately not implemented."""

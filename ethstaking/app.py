"""CDK app entry point.

Run by the CDK toolkit through cdk.json (``python -m ethstaking.app``):

    cdk synth -c selfHostExecutionClient=no -c selfHostConsensusClient=yes \\
              -c validatorWithConsensusClient=yes

stdout belongs to the toolkit, so the plan summary and logs go to stderr.
ETHSTAKING_LOG_LEVEL sets the console level (default INFO) and
ETHSTAKING_LOG_FILE adds a rotating DEBUG log file.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from typing import cast

import aws_cdk as cdk
from loguru import logger
from rich.console import Console
from rich.table import Table

from ethstaking.config import StakingSettings, load_settings
from ethstaking.constants import DEFAULT_STACK_ID, ContextKey
from ethstaking.exceptions import ConfigurationError
from ethstaking.logging import LOG_LEVELS, LogConfig, LogLevel, setup_logging, teardown_logging
from ethstaking.plan import DeploymentPlan
from ethstaking.stack import EthStakingStack

LOG_LEVEL_ENV = "ETHSTAKING_LOG_LEVEL"
LOG_FILE_ENV = "ETHSTAKING_LOG_FILE"


def context_values(app: cdk.App) -> dict[str, object]:
    """Read every known setting from the app's CDK context."""
    return {str(key): app.node.try_get_context(str(key)) for key in ContextKey}


def render_plan(settings: StakingSettings, plan: DeploymentPlan) -> Table:
    table = Table(title="EthStaking deployment", title_justify="left")
    table.add_column("Node", style="cyan")
    table.add_column("Instance")
    table.add_column("Data volume", justify="right")
    table.add_column("Monitored logs")

    for node in plan.nodes:
        table.add_row(
            node.name,
            node.instance_type,
            f"{node.data_volume.size_gib} GiB" if node.data_volume else "-",
            ", ".join(source.log_group_name for source in node.log_sources),
        )

    table.caption = (
        f"zone={settings.availability_zone} vpc={settings.vpc_cidr} "
        f"alarms->{settings.alarm_email or 'topic only'}"
    )
    return table


def log_config_from_env(environ: Mapping[str, str] = os.environ) -> LogConfig:
    """Build the synth run's LogConfig from ETHSTAKING_LOG_LEVEL / ETHSTAKING_LOG_FILE.

    Raises:
        ConfigurationError: If the level is not a known log level.
    """
    level = environ.get(LOG_LEVEL_ENV, "INFO").upper()
    if level not in LOG_LEVELS:
        raise ConfigurationError(
            f"Invalid {LOG_LEVEL_ENV} {level!r}. Valid: {', '.join(LOG_LEVELS)}"
        )
    return LogConfig(level=cast(LogLevel, level), file=environ.get(LOG_FILE_ENV) or None)


def main(app: cdk.App | None = None) -> None:
    console = Console(stderr=True)
    try:
        log_config = log_config_from_env()
    except ConfigurationError as e:
        console.print(f"[bold red]error:[/bold red] {e}")
        sys.exit(1)

    handler_ids = setup_logging(log_config)
    try:
        if app is None:
            app = cdk.App()
        try:
            settings = load_settings(context_values(app))
            stack = EthStakingStack(
                app, DEFAULT_STACK_ID,
                settings=settings,
                env=cdk.Environment(
                    account=os.environ.get("CDK_DEFAULT_ACCOUNT"),
                    region=os.environ.get("CDK_DEFAULT_REGION"),
                ),
            )
        except ConfigurationError as e:
            logger.error("Configuration rejected: {error}", error=str(e))
            console.print(f"[bold red]error:[/bold red] {e}")
            sys.exit(1)

        console.print(render_plan(settings, stack.plan))
        app.synth()
    finally:
        teardown_logging(handler_ids)


if __name__ == "__main__":
    main()

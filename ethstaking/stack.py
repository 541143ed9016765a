"""Top-level stack.

Wires the deployment plan to resources: the dual-stack VPC, one monitored
spot node per planned role, a composite outage alarm over every node alarm
notifying one SNS topic, and one dashboard.
"""

from __future__ import annotations

from typing import Any

from aws_cdk import CfnOutput, Stack, Tags
from aws_cdk import aws_cloudwatch as cloudwatch
from aws_cdk import aws_cloudwatch_actions as cw_actions
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_sns as sns
from aws_cdk import aws_sns_subscriptions as subscriptions
from constructs import Construct
from loguru import logger

from ethstaking.config import StakingSettings
from ethstaking.constants import DASHBOARD_ROW_WIDTH, EthStakingTag
from ethstaking.network import DualStackVpc
from ethstaking.node import MonitoredSpotNode
from ethstaking.plan import plan_deployment

log = logger.bind(component="stack")


class EthStakingStack(Stack):
    """Ethereum staking infrastructure.

    The plan is resolved before the stack registers itself with ``scope``,
    so an invalid flag combination leaves the app untouched.

    Args:
        scope: The CDK app.
        construct_id: Stack id.
        settings: Validated deployment settings.
        **kwargs: Passed to Stack (env, description, ...).

    Raises:
        ConfigurationError: If the flags ask for an impossible setup.
        UnsupportedConfigurationError: If the flags ask for a self-hosted execution client.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        settings: StakingSettings,
        **kwargs: Any,
    ) -> None:
        plan = plan_deployment(settings.flags)
        super().__init__(scope, construct_id, **kwargs)
        self.settings = settings
        self.plan = plan

        Tags.of(self).add(str(EthStakingTag.MANAGED), "true")

        self.vpc = DualStackVpc(
            self, "Vpc",
            availability_zones=[settings.availability_zone],
            ip_addresses=ec2.IpAddresses.cidr(settings.vpc_cidr),
            nat_gateways=0,
            subnet_configuration=[
                ec2.SubnetConfiguration(name="Public", subnet_type=ec2.SubnetType.PUBLIC),
            ],
        )

        self.nodes = [
            MonitoredSpotNode(
                self, spec.name,
                spec=spec,
                vpc=self.vpc,
                key_pair_name=settings.key_pair_name,
            )
            for spec in plan.nodes
        ]
        self.alarms: list[cloudwatch.IAlarm] = [alarm for node in self.nodes for alarm in node.alarms]

        self.alarm_topic = sns.Topic(self, "AlarmTopic", display_name="EthStaking alarms")
        if settings.alarm_email:
            self.alarm_topic.add_subscription(subscriptions.EmailSubscription(settings.alarm_email))

        self.outage_alarm = cloudwatch.CompositeAlarm(
            self, "OutageAlarm",
            alarm_description=f"Any alarm of: {', '.join(plan.names)}",
            alarm_rule=cloudwatch.AlarmRule.any_of(*self.alarms),
        )
        topic_action = cw_actions.SnsAction(self.alarm_topic)
        self.outage_alarm.add_alarm_action(topic_action)
        self.outage_alarm.add_ok_action(topic_action)

        self.dashboard = cloudwatch.Dashboard(
            self, "Dashboard",
            dashboard_name=settings.dashboard_name,
            widgets=[
                [
                    cloudwatch.AlarmStatusWidget(
                        alarms=[self.outage_alarm],
                        title="Outage",
                        width=DASHBOARD_ROW_WIDTH,
                    ),
                ],
                *(row for node in self.nodes for row in node.dashboard_widgets),
            ],
        )

        CfnOutput(self, "DashboardName", value=settings.dashboard_name)
        CfnOutput(self, "AlarmTopicArn", value=self.alarm_topic.topic_arn)
        CfnOutput(self, "OutageAlarmArn", value=self.outage_alarm.alarm_arn)

        log.info(
            "Stack {stack}: nodes={nodes}, alarms={n}",
            stack=construct_id,
            nodes=", ".join(plan.names),
            n=len(self.alarms),
        )

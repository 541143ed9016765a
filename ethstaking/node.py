"""Monitored spot node.

One construct for every client role: a security group, an instance role,
a one-time spot launch template, a 0..1 Auto Scaling Group that replaces
the instance when it dies or gets reclaimed, an optional retained data
volume, and the CloudWatch metrics, alarms and dashboard rows that watch
it. Roles differ only by their NodeSpec (see ethstaking.roles).

The node does not decide how its alarms are combined. It exposes the
individual alarms and leaves aggregation to the stack.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import cast

from aws_cdk import Duration, RemovalPolicy, Size, Tags
from aws_cdk import aws_autoscaling as autoscaling
from aws_cdk import aws_cloudwatch as cloudwatch
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_iam as iam
from aws_cdk import aws_logs as logs
from constructs import Construct
from loguru import logger

from ethstaking.constants import (
    CLOUDWATCH_AGENT_ACTIONS,
    DASHBOARD_ROW_WIDTH,
    DATA_DEVICE,
    DATA_FSTYPE,
    DISK_USED_MAX_PERCENT,
    NETWORK_OUT_MIN_BYTES,
    ROOT_DEVICE_NAME,
    EthStakingTag,
    Namespace,
)
from ethstaking.spec import Comparison, DataVolume, Ingress, LogSource, NodeSpec, Reach, Threshold

log = logger.bind(component="node")

GRAPHS_PER_ROW = 3


class MonitoredSpotNode(Construct):
    """A single self-healing spot instance plus its monitoring.

    Args:
        scope: Parent construct.
        construct_id: Construct id.
        spec: What to build.
        vpc: Dual-stack VPC with public subnets.
        key_pair_name: Existing EC2 key pair for SSH, if any.

    Attributes:
        alarms: Every alarm of this node, log-derived ones first.
        dashboard_widgets: Dashboard rows, top to bottom.
        security_group: The node's security group.
        instance_role: Role assumed by the instance.
        auto_scaling_group: The 0..1 group.
        data_volume: Retained data volume, or None.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        spec: NodeSpec,
        vpc: ec2.IVpc,
        key_pair_name: str | None = None,
    ) -> None:
        super().__init__(scope, construct_id)
        self.spec = spec
        self.alarms: list[cloudwatch.IAlarm] = []
        self.dashboard_widgets: list[list[cloudwatch.IWidget]] = []

        Tags.of(self).add(str(EthStakingTag.ROLE), spec.name)

        self.security_group = self._security_group(vpc, spec.ingress)
        self.instance_role = self._instance_role()

        availability_zone = vpc.availability_zones[0]
        self.data_volume: ec2.Volume | None = None
        if spec.data_volume is not None:
            self.data_volume = self._data_volume(spec.data_volume, availability_zone)

        launch_template = self._launch_template(key_pair_name)
        subnets = ec2.SubnetSelection(
            subnet_type=ec2.SubnetType.PUBLIC,
            # An EBS volume can only attach to an instance in its own zone.
            availability_zones=[availability_zone] if self.data_volume else None,
        )
        self.auto_scaling_group = autoscaling.AutoScalingGroup(
            self, "ASG",
            launch_template=launch_template,
            min_capacity=0,
            max_capacity=1,
            vpc=vpc,
            vpc_subnets=subnets,
            group_metrics=[autoscaling.GroupMetrics(autoscaling.GroupMetric.IN_SERVICE_INSTANCES)],
        )

        for source in spec.log_sources:
            self._monitor_log_source(source)
        self._monitor_infrastructure()

        log.bind(node=spec.name).info(
            "{instance_type}, {n} alarms, volume={volume}",
            instance_type=spec.instance_type,
            n=len(self.alarms),
            volume=spec.data_volume.size_gib if spec.data_volume else None,
        )

    # -------------------------------------------------------------------------
    # Compute
    # -------------------------------------------------------------------------

    def _security_group(self, vpc: ec2.IVpc, ingress: Sequence[Ingress]) -> ec2.SecurityGroup:
        sg = ec2.SecurityGroup(self, "SecGroup", vpc=vpc, allow_all_ipv6_outbound=True)
        sg.add_ingress_rule(ec2.Peer.any_ipv4(), ec2.Port.all_icmp(), "allow ICMP4")
        sg.add_ingress_rule(ec2.Peer.any_ipv6(), ec2.Port.all_icmp_v6(), "allow ICMP6")
        sg.add_ingress_rule(ec2.Peer.any_ipv6(), ec2.Port.tcp(22), "allow SSH over IPv6")

        for rule in ingress:
            port = ec2.Port.tcp(rule.port) if rule.protocol == "tcp" else ec2.Port.udp(rule.port)
            match rule.reach:
                case Reach.PUBLIC:
                    sg.add_ingress_rule(ec2.Peer.any_ipv4(), port, rule.description)
                    sg.add_ingress_rule(ec2.Peer.any_ipv6(), port, rule.description)
                case Reach.VPC:
                    sg.add_ingress_rule(ec2.Peer.ipv4(vpc.vpc_cidr_block), port, rule.description)
        return sg

    def _instance_role(self) -> iam.Role:
        role = iam.Role(
            self, "InstanceRole",
            assumed_by=iam.ServicePrincipal("ec2.amazonaws.com"),
        )
        # CloudWatch agent
        role.add_to_policy(iam.PolicyStatement(
            actions=list(CLOUDWATCH_AGENT_ACTIONS),
            effect=iam.Effect.ALLOW,
            resources=["*"],
        ))
        return role

    def _data_volume(self, volume: DataVolume, availability_zone: str) -> ec2.Volume:
        # Pinned to the VPC's first zone rather than the instance's, which
        # would be circular with grant_attach_volume().
        data_volume = ec2.Volume(
            self, "EbsVolume",
            availability_zone=availability_zone,
            encrypted=False,
            removal_policy=RemovalPolicy.RETAIN,
            size=Size.gibibytes(volume.size_gib),
            volume_name=volume.volume_name,
            volume_type=ec2.EbsDeviceVolumeType.GP3,
        )
        data_volume.grant_attach_volume(self.instance_role)
        return data_volume

    def _launch_template(self, key_pair_name: str | None) -> ec2.LaunchTemplate:
        key_pair = (
            ec2.KeyPair.from_key_pair_name(self, "KeyPair", key_pair_name)
            if key_pair_name
            else None
        )
        launch_template = ec2.LaunchTemplate(
            self, "LaunchTemplate",
            block_devices=[
                ec2.BlockDevice(
                    device_name=ROOT_DEVICE_NAME,
                    volume=ec2.BlockDeviceVolume.ebs(self.spec.root_volume_gib),
                ),
            ],
            ebs_optimized=True,
            instance_type=ec2.InstanceType(self.spec.instance_type),
            key_pair=key_pair,
            machine_image=ec2.MachineImage.latest_amazon_linux2023(
                cpu_type=ec2.AmazonLinuxCpuType.ARM_64,
            ),
            role=self.instance_role,
            # One-time requests are the only kind an ASG accepts. The security
            # group goes on the network interface below, not here.
            spot_options=ec2.LaunchTemplateSpotOptions(request_type=ec2.SpotRequestType.ONE_TIME),
        )

        # IPv6 address on the primary interface, see aws-cdk#11946.
        cfn_launch_template = cast(ec2.CfnLaunchTemplate, launch_template.node.default_child)
        cfn_launch_template.add_property_override(
            "LaunchTemplateData.NetworkInterfaces",
            [{
                "DeviceIndex": 0,
                "Groups": [self.security_group.security_group_id],
                "Ipv6AddressCount": 1,
            }],
        )
        return launch_template

    # -------------------------------------------------------------------------
    # Monitoring
    # -------------------------------------------------------------------------

    def _monitor_log_source(self, source: LogSource) -> None:
        scope = Construct(self, _construct_id(source.title))
        log_group = logs.LogGroup.from_log_group_name(scope, "LogGroup", source.log_group_name)

        for metric in source.metrics:
            logs.MetricFilter(
                scope, f"{metric.name}MetricFilter",
                filter_pattern=logs.FilterPattern.string_value("$.msg", "=", metric.message),
                log_group=log_group,
                metric_namespace=source.namespace,
                metric_name=metric.name,
                metric_value=metric.filter_field,
            )
            if metric.alarm is not None:
                self.alarms.append(_threshold_alarm(
                    scope, f"{metric.name}Alarm",
                    cloudwatch.Metric(
                        metric_name=metric.name,
                        namespace=source.namespace,
                        period=Duration.minutes(metric.alarm.period_minutes),
                        statistic=metric.alarm.statistic,
                    ),
                    metric.alarm,
                ))

        graphs: list[cloudwatch.IWidget] = [
            cloudwatch.GraphWidget(
                left=[
                    cloudwatch.Metric(
                        metric_name=metric.name,
                        namespace=source.namespace,
                        period=Duration.minutes(1),
                        statistic=metric.statistic,
                    )
                    for metric in group
                ],
            )
            for group in source.graph_groups()
        ]
        self.dashboard_widgets.append([_header(f"## {source.title}")])
        self.dashboard_widgets.extend(
            graphs[i:i + GRAPHS_PER_ROW] for i in range(0, len(graphs), GRAPHS_PER_ROW)
        )

    def _monitor_infrastructure(self) -> None:
        in_service_alarm = _threshold_alarm(
            self, "AsgInServiceInstancesAlarm",
            self._asg_metric("GroupInServiceInstances", Namespace.AUTOSCALING, "Minimum", minutes=1),
            Threshold("<", 1, period_minutes=1),
        )
        network_out_alarm = _threshold_alarm(
            self, "AsgNetworkOutAlarm",
            self._asg_metric("NetworkOut", Namespace.EC2, "Average"),
            Threshold("<", NETWORK_OUT_MIN_BYTES, statistic="Average"),
        )
        cpu = self._asg_metric("CPUUtilization", Namespace.EC2, "Average")
        memory = self._asg_metric("mem_used_percent", Namespace.CW_AGENT, "Maximum", minutes=1)
        swap = self._asg_metric("swap_used_percent", Namespace.CW_AGENT, "Maximum", minutes=1)
        percent_axis = cloudwatch.YAxisProps(min=0, max=100)
        zero_axis = cloudwatch.YAxisProps(min=0)

        self.alarms.extend([in_service_alarm, network_out_alarm])
        storage_row: list[cloudwatch.IWidget] = []

        if self.data_volume is not None and self.spec.data_volume is not None:
            ebs_read_ops_alarm = _threshold_alarm(
                self, "EbsReadOpsAlarm",
                cloudwatch.Metric(
                    dimensions_map={"VolumeId": self.data_volume.volume_id},
                    metric_name="VolumeReadOps",
                    namespace=str(Namespace.EBS),
                    period=Duration.minutes(5),
                    statistic="Sum",
                ),
                Threshold("<", 1, evaluation_periods=2, statistic="Sum"),
            )
            disk_used_alarm = _threshold_alarm(
                self, "ClientDataDiskUsedPercentAlarm",
                self._asg_metric(
                    "disk_used_percent", Namespace.CW_AGENT, "Minimum",
                    device=DATA_DEVICE,
                    fstype=DATA_FSTYPE,
                    path=self.spec.data_volume.mount_path,
                ),
                Threshold(">", DISK_USED_MAX_PERCENT),
            )
            self.alarms.extend([ebs_read_ops_alarm, disk_used_alarm])
            storage_row = [
                cloudwatch.AlarmWidget(alarm=disk_used_alarm, left_y_axis=percent_axis),
                cloudwatch.AlarmWidget(alarm=network_out_alarm, left_y_axis=zero_axis),
                cloudwatch.AlarmWidget(alarm=ebs_read_ops_alarm, left_y_axis=zero_axis),
            ]
        else:
            storage_row = [cloudwatch.AlarmWidget(alarm=network_out_alarm, left_y_axis=zero_axis)]

        self.dashboard_widgets.extend([
            [_header(f"## {self.spec.title} infrastructure")],
            [
                cloudwatch.AlarmWidget(alarm=in_service_alarm, left_y_axis=zero_axis),
                cloudwatch.GraphWidget(left=[cpu], left_y_axis=percent_axis),
                cloudwatch.GraphWidget(
                    left=[memory],
                    left_y_axis=percent_axis,
                    right=[swap],
                    right_y_axis=percent_axis,
                    title="Memory usage",
                ),
            ],
            storage_row,
        ])

    def _asg_metric(
        self,
        name: str,
        namespace: str,
        statistic: str,
        *,
        minutes: int = 5,
        **dimensions: str,
    ) -> cloudwatch.Metric:
        return cloudwatch.Metric(
            dimensions_map={
                "AutoScalingGroupName": self.auto_scaling_group.auto_scaling_group_name,
                **dimensions,
            },
            metric_name=name,
            namespace=str(namespace),
            period=Duration.minutes(minutes),
            statistic=statistic,
        )


def _threshold_alarm(
    scope: Construct,
    construct_id: str,
    metric: cloudwatch.IMetric,
    threshold: Threshold,
) -> cloudwatch.Alarm:
    return cloudwatch.Alarm(
        scope, construct_id,
        comparison_operator=_comparison_operator(threshold.comparison),
        evaluation_periods=threshold.evaluation_periods,
        metric=metric,
        threshold=threshold.value,
        treat_missing_data=cloudwatch.TreatMissingData.BREACHING,
    )


def _comparison_operator(comparison: Comparison) -> cloudwatch.ComparisonOperator:
    match comparison:
        case "<":
            return cloudwatch.ComparisonOperator.LESS_THAN_THRESHOLD
        case ">":
            return cloudwatch.ComparisonOperator.GREATER_THAN_THRESHOLD


def _header(markdown: str) -> cloudwatch.TextWidget:
    return cloudwatch.TextWidget(markdown=markdown, height=1, width=DASHBOARD_ROW_WIDTH)


def _construct_id(title: str) -> str:
    return "".join(c for c in title.title() if c.isalnum())

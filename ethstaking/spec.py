"""Node specifications - what each client role needs.

A NodeSpec is an immutable description of one monitored spot node: its
size, the ports it opens, its data volume and the log lines turned into
metrics. MonitoredSpotNode turns a NodeSpec into resources.

Example:
    from ethstaking.spec import Ingress, LogMetric, LogSource, NodeSpec, Threshold

    spec = NodeSpec(
        name="beacon",
        title="Beacon node",
        instance_type="c7g.medium",
        ingress=(Ingress(9000, "tcp", "lighthouse"),),
        log_sources=(
            LogSource(
                log_group_name="beacon-logs",
                namespace="Example/Beacon",
                title="Beacon",
                metrics=(
                    LogMetric("SyncedPeers", message="Synced", field="peers",
                              alarm=Threshold("<", 5, evaluation_periods=2)),
                ),
            ),
        ),
    )
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Literal

from ethstaking.constants import DEFAULT_ROOT_VOLUME_GIB

type IpProtocol = Literal["tcp", "udp"]
type Comparison = Literal["<", ">"]
type Statistic = Literal["Minimum", "Maximum", "Average", "Sum"]


class Reach(StrEnum):
    """Who may connect to an application port."""

    PUBLIC = "public"  # any IPv4 and any IPv6 address
    VPC = "vpc"  # the VPC IPv4 range only


@dataclass(frozen=True, slots=True)
class Ingress:
    """One application port opened in the node's security group.

    Args:
        port: Port number.
        protocol: "tcp" or "udp".
        description: Rule description shown in the console.
        reach: PUBLIC for peer-to-peer ports, VPC for internal RPC.
    """

    port: int
    protocol: IpProtocol
    description: str
    reach: Reach = Reach.PUBLIC

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise ValueError(f"port must be in 1..65535, got {self.port}")


@dataclass(frozen=True, slots=True)
class Threshold:
    """Alarm condition on a metric.

    Args:
        comparison: "<" alarms below the threshold, ">" above it.
        value: Threshold value.
        evaluation_periods: Consecutive breaching periods before alarming.
        period_minutes: Metric period.
        statistic: Statistic evaluated per period.
    """

    comparison: Comparison
    value: float
    evaluation_periods: int = 1
    period_minutes: int = 5
    statistic: Statistic = "Minimum"

    def __post_init__(self) -> None:
        if self.evaluation_periods < 1:
            raise ValueError(f"evaluation_periods must be >= 1, got {self.evaluation_periods}")


@dataclass(frozen=True, slots=True)
class LogMetric:
    """A metric extracted from structured JSON log lines.

    Lines whose ``msg`` equals ``message`` publish the numeric ``field``
    as the metric value.

    Args:
        name: Metric name.
        message: Exact value of the ``msg`` field to match.
        field: JSON field holding the value.
        statistic: Statistic used on the dashboard.
        alarm: Alarm condition, or None for a dashboard-only metric.
    """

    name: str
    message: str
    field: str
    statistic: Statistic = "Minimum"
    alarm: Threshold | None = None

    @property
    def filter_field(self) -> str:
        return f"$.{self.field}"


@dataclass(frozen=True, slots=True)
class LogSource:
    """A log group written by one client process and the metrics derived from it.

    Args:
        log_group_name: Log group the CloudWatch agent ships to.
        namespace: Namespace of the derived metrics.
        title: Dashboard section header.
        metrics: Derived metrics, in dashboard order.
        graphs: Dashboard graphs, each a tuple of metric names.
            Defaults to one graph per metric.
    """

    log_group_name: str
    namespace: str
    title: str
    metrics: tuple[LogMetric, ...]
    graphs: tuple[tuple[str, ...], ...] = ()

    def __post_init__(self) -> None:
        names = [m.name for m in self.metrics]
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate metric names in {self.log_group_name}: {names}")
        unknown = {n for graph in self.graphs for n in graph} - set(names)
        if unknown:
            raise ValueError(f"graphs reference unknown metrics: {sorted(unknown)}")

    def graph_groups(self) -> tuple[tuple[LogMetric, ...], ...]:
        by_name = {m.name: m for m in self.metrics}
        if not self.graphs:
            return tuple((m,) for m in self.metrics)
        return tuple(tuple(by_name[n] for n in graph) for graph in self.graphs)


@dataclass(frozen=True, slots=True)
class DataVolume:
    """Retained EBS volume holding the client's chain data.

    Args:
        size_gib: Volume size.
        volume_name: EBS volume name.
        mount_path: Where the instance mounts it; used as a disk metric dimension.
    """

    size_gib: int
    volume_name: str
    mount_path: str

    def __post_init__(self) -> None:
        if self.size_gib < 1:
            raise ValueError(f"size_gib must be >= 1, got {self.size_gib}")
        if not self.mount_path.startswith("/"):
            raise ValueError(f"mount_path must be absolute path, got '{self.mount_path}'")


@dataclass(frozen=True, slots=True)
class NodeSpec:
    """Everything that differs between the execution, consensus and validator nodes.

    Args:
        name: Short id, used for construct ids.
        title: Human name, used in dashboard headers.
        instance_type: EC2 instance type, e.g. "c7g.medium".
        ingress: Application ports on top of ICMP and SSH.
        data_volume: Persistent chain data volume, if the client needs one.
        log_sources: Log groups turned into metrics and alarms.
        root_volume_gib: Root device size.
    """

    name: str
    title: str
    instance_type: str
    ingress: tuple[Ingress, ...] = ()
    data_volume: DataVolume | None = None
    log_sources: tuple[LogSource, ...] = ()
    root_volume_gib: int = DEFAULT_ROOT_VOLUME_GIB

    def __post_init__(self) -> None:
        if not self.name.isalnum():
            raise ValueError(f"name must be alphanumeric, got '{self.name}'")

    def with_log_source(self, source: LogSource) -> NodeSpec:
        """Return a copy that also monitors ``source``."""
        return replace(self, log_sources=(*self.log_sources, source))

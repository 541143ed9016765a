"""Node specs of the three Ethereum client roles.

The metric filters below depend on the JSON log lines the clients write.
A client upgrade that renames a ``msg`` or a field silently empties the
corresponding metric, and the alarm on it fires (missing data breaches).

    Erigon               {"msg": "GoodPeers", "eth68": 31, ...}
    Lighthouse BN        {"msg": "Synced", "slot": ..., "peers": ..., "epoch": ..., "finalized_epoch": ...}
    Lighthouse VC        {"msg": "Connected to beacon node(s)", "synced": 1, "available": 1, ...}
                         {"msg": "Successfully published attestations", "count": 2, ...}
"""

from __future__ import annotations

from typing import Final

from ethstaking.spec import DataVolume, Ingress, LogMetric, LogSource, NodeSpec, Reach, Threshold

# =============================================================================
# Log sources
# =============================================================================

# Log group names are hardcoded in amazon-cloudwatch-agent-config.json on the hosts.
ERIGON_LOGS: Final = LogSource(
    log_group_name="EthStaking-execution-client-erigon",
    namespace="EthStaking/Erigon",
    title="Ethereum Execution layer",
    metrics=(
        LogMetric(
            "GoodPeers", message="GoodPeers", field="eth68", statistic="Average",
            alarm=Threshold("<", 10, evaluation_periods=2, statistic="Average"),
        ),
    ),
)

BEACON_NODE_LOGS: Final = LogSource(
    log_group_name="EthStaking-beacon-node-lighthouse",
    namespace="EthStaking/Lighthouse-Beacon-Node",
    title="Ethereum Consensus layer",
    metrics=(
        LogMetric(
            "SyncedSlot", message="Synced", field="slot",
            alarm=Threshold("<", 3_000_000),
        ),
        LogMetric("SyncedEpoch", message="Synced", field="epoch"),
        LogMetric("SyncedFinalizedEpoch", message="Synced", field="finalized_epoch"),
        LogMetric(
            "SyncedPeers", message="Synced", field="peers", statistic="Average",
            alarm=Threshold("<", 5, evaluation_periods=2, statistic="Average"),
        ),
    ),
    graphs=(("SyncedSlot",), ("SyncedEpoch", "SyncedFinalizedEpoch"), ("SyncedPeers",)),
)

VALIDATOR_CLIENT_LOGS: Final = LogSource(
    log_group_name="EthStaking-validator-client-lighthouse",
    namespace="EthStaking/Lighthouse-Validator-Client",
    title="Ethereum Validator",
    metrics=(
        LogMetric(
            "SyncedBeaconNodes", message="Connected to beacon node(s)", field="synced",
            alarm=Threshold("<", 1, evaluation_periods=2),
        ),
        LogMetric("AvailableBeaconNodes", message="Connected to beacon node(s)", field="available"),
        LogMetric(
            "PublishedAttestations", message="Successfully published attestations",
            field="count", statistic="Sum",
            alarm=Threshold("<", 1, evaluation_periods=2, statistic="Sum"),
        ),
    ),
    graphs=(("SyncedBeaconNodes", "AvailableBeaconNodes"), ("PublishedAttestations",)),
)

# =============================================================================
# Roles
# =============================================================================


def execution_client() -> NodeSpec:
    """Erigon. Needs the biggest disk and the most CPU of the three."""
    return NodeSpec(
        name="ExecutionClient",
        title="Execution client",
        instance_type="m7g.xlarge",
        ingress=(
            Ingress(30303, "tcp", "erigon eth/68 peering"),
            Ingress(30303, "udp", "erigon eth/68 peering"),
            Ingress(42069, "tcp", "erigon snap sync"),
            Ingress(42069, "udp", "erigon snap sync"),
            Ingress(8551, "tcp", "erigon engine API", reach=Reach.VPC),
        ),
        data_volume=DataVolume(
            size_gib=2000,
            volume_name="ExecutionClientData",
            mount_path="/mnt/execution-persistent-storage",
        ),
        log_sources=(ERIGON_LOGS,),
    )


def consensus_client(*, with_validator: bool = False) -> NodeSpec:
    """Lighthouse beacon node, optionally running the validator client too."""
    # https://lighthouse-book.sigmaprime.io/advanced_networking.html#nat-traversal-port-forwarding
    spec = NodeSpec(
        name="ConsensusClient",
        title="Consensus client",
        instance_type="c7g.medium",
        ingress=(
            Ingress(9000, "tcp", "lighthouse"),
            Ingress(9000, "udp", "lighthouse"),
            Ingress(5052, "tcp", "lighthouse staking http server", reach=Reach.VPC),
        ),
        data_volume=DataVolume(
            size_gib=100,
            volume_name="ConsensusClientData",
            mount_path="/mnt/consensus-persistent-storage",
        ),
        log_sources=(BEACON_NODE_LOGS,),
    )
    return spec.with_log_source(VALIDATOR_CLIENT_LOGS) if with_validator else spec


def validator_client() -> NodeSpec:
    """Standalone Lighthouse validator client. Keeps no chain data."""
    return NodeSpec(
        name="Validator",
        title="Validator client",
        instance_type="c7g.medium",
        log_sources=(VALIDATOR_CLIENT_LOGS,),
    )

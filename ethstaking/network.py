"""Dual-stack VPC.

CDK builds an IPv4-only VPC; this module layers IPv6 on top of it. One
Amazon-provided /56 is requested for the VPC and carved into one /64 per
subnet, assigned in the order public, private, isolated.

Example:
    from aws_cdk import aws_ec2 as ec2
    from ethstaking.network import DualStackVpc

    vpc = DualStackVpc(
        stack, "Vpc",
        ip_addresses=ec2.IpAddresses.cidr("192.168.0.0/24"),
        nat_gateways=0,
        subnet_configuration=[
            ec2.SubnetConfiguration(name="Public", subnet_type=ec2.SubnetType.PUBLIC),
        ],
    )

See https://github.com/aws/aws-cdk/issues/894 for why this is not built in.
"""

from __future__ import annotations

from typing import Any, cast

from aws_cdk import Fn
from aws_cdk import aws_ec2 as ec2
from constructs import Construct, IDependable
from loguru import logger

from ethstaking.constants import IPV6_ANY, IPV6_SUBNET_PREFIX

log = logger.bind(component="network")


class DualStackVpc(ec2.Vpc):
    """A VPC whose subnets all carry an IPv6 range next to their IPv4 one.

    Public subnets route ``::/0`` through the internet gateway, private
    subnets through an egress-only internet gateway. Isolated subnets get
    addresses but no default route.

    Attributes:
        ipv6_cidr_block: The VPC IPv6 block allocation.
        dual_stack_subnets: Subnets in IPv6 range order.
        ipv6_internet_gateway_id: Gateway used by public subnets, if any.
        egress_only_gateway_id: Gateway used by private subnets, if any.
    """

    def __init__(self, scope: Construct, construct_id: str, **kwargs: Any) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.ipv6_cidr_block = ec2.CfnVPCCidrBlock(
            self, "Cidr6",
            vpc_id=self.vpc_id,
            amazon_provided_ipv6_cidr_block=True,
        )
        self.dual_stack_subnets: list[ec2.ISubnet] = [
            *self.public_subnets,
            *self.private_subnets,
            *self.isolated_subnets,
        ]
        self.ipv6_internet_gateway_id: str | None = None
        self.egress_only_gateway_id: str | None = None

        self._assign_ipv6_ranges()
        if self.public_subnets:
            self._route_public_subnets()
        if self.private_subnets:
            self._route_private_subnets()

        log.debug(
            "IPv6 wired for {n} subnets ({p} public, {r} private, {i} isolated)",
            n=len(self.dual_stack_subnets),
            p=len(self.public_subnets),
            r=len(self.private_subnets),
            i=len(self.isolated_subnets),
        )

    def _assign_ipv6_ranges(self) -> None:
        if not self.dual_stack_subnets:
            return

        vpc_block = Fn.select(0, self.vpc_ipv6_cidr_blocks)
        ranges = Fn.cidr(
            vpc_block,
            len(self.dual_stack_subnets),
            str(128 - IPV6_SUBNET_PREFIX),
        )

        for index, subnet in enumerate(self.dual_stack_subnets):
            cfn_subnet = cast(ec2.CfnSubnet, subnet.node.default_child)
            cfn_subnet.ipv6_cidr_block = Fn.select(index, ranges)
            subnet.node.add_dependency(self.ipv6_cidr_block)

    def _route_public_subnets(self) -> None:
        igw_id = self.internet_gateway_id
        attached: IDependable = self.internet_connectivity_established
        if igw_id is None:
            igw = ec2.CfnInternetGateway(self, "IGW6")
            attached = ec2.CfnVPCGatewayAttachment(
                self, "IGW6Attachment",
                internet_gateway_id=igw.ref,
                vpc_id=self.vpc_id,
            )
            igw_id = igw.ref
            log.debug("VPC had no internet gateway, created one")

        self.ipv6_internet_gateway_id = igw_id
        for subnet in self.public_subnets:
            route = _add_default_route6(subnet, ec2.RouterType.GATEWAY, igw_id)
            # A route to a gateway that is not attached yet fails to create.
            route.node.add_dependency(attached)

    def _route_private_subnets(self) -> None:
        eigw = ec2.CfnEgressOnlyInternetGateway(self, "EIGW6", vpc_id=self.vpc_id)
        self.egress_only_gateway_id = eigw.ref
        for subnet in self.private_subnets:
            _add_default_route6(subnet, ec2.RouterType.EGRESS_ONLY_INTERNET_GATEWAY, eigw.ref)


def _add_default_route6(subnet: ec2.ISubnet, router_type: ec2.RouterType, router_id: str) -> ec2.CfnRoute:
    cast(ec2.Subnet, subnet).add_route(
        "DefaultRoute6",
        router_type=router_type,
        router_id=router_id,
        destination_ipv6_cidr_block=IPV6_ANY,
        enables_internet_connectivity=True,
    )
    return cast(ec2.CfnRoute, subnet.node.find_child("DefaultRoute6"))

from __future__ import annotations

from typing import cast

import aws_cdk as cdk
import pytest
from aws_cdk import aws_ec2 as ec2
from aws_cdk.assertions import Template

from ethstaking.network import DualStackVpc

PUBLIC = ec2.SubnetConfiguration(name="Public", subnet_type=ec2.SubnetType.PUBLIC)
PRIVATE = ec2.SubnetConfiguration(name="Private", subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS)
ISOLATED = ec2.SubnetConfiguration(name="Isolated", subnet_type=ec2.SubnetType.PRIVATE_ISOLATED)


def _vpc(stack: cdk.Stack, *groups: ec2.SubnetConfiguration, **kwargs) -> DualStackVpc:
    has_private = any(g.subnet_type == ec2.SubnetType.PRIVATE_WITH_EGRESS for g in groups)
    return DualStackVpc(
        stack, "Vpc",
        max_azs=2,
        nat_gateways=1 if has_private else 0,
        subnet_configuration=list(groups),
        **kwargs,
    )


def _ipv6_routes(template: Template) -> dict:
    return template.find_resources(
        "AWS::EC2::Route",
        {"Properties": {"DestinationIpv6CidrBlock": "::/0"}},
    )


def _only_logical_id(template: Template, resource_type: str) -> str:
    resources = template.find_resources(resource_type)
    assert len(resources) == 1
    return next(iter(resources))


class TestIpv6Ranges:
    def test_allocates_one_amazon_provided_block(self, stack):
        _vpc(stack, PUBLIC, PRIVATE, ISOLATED)
        template = Template.from_stack(stack)
        template.resource_count_is("AWS::EC2::VPCCidrBlock", 1)
        template.has_resource_properties(
            "AWS::EC2::VPCCidrBlock", {"AmazonProvidedIpv6CidrBlock": True}
        )

    def test_one_range_per_subnet_in_public_private_isolated_order(self, stack):
        vpc = _vpc(stack, ISOLATED, PRIVATE, PUBLIC)
        expected = [*vpc.public_subnets, *vpc.private_subnets, *vpc.isolated_subnets]
        assert [s.node.path for s in vpc.dual_stack_subnets] == [s.node.path for s in expected]
        assert len(expected) == 6

        for index, subnet in enumerate(expected):
            cfn_subnet = cast(ec2.CfnSubnet, subnet.node.default_child)
            resolved = stack.resolve(cfn_subnet.ipv6_cidr_block)
            selected, cidr = resolved["Fn::Select"]
            assert selected == index
            _, count, bits = cidr["Fn::Cidr"]
            assert count == len(expected)
            assert bits == "64"

    def test_all_ranges_carved_from_the_same_block(self, stack):
        vpc = _vpc(stack, PUBLIC, PRIVATE, ISOLATED)
        sources = {
            str(stack.resolve(cast(ec2.CfnSubnet, s.node.default_child).ipv6_cidr_block)["Fn::Select"][1])
            for s in vpc.dual_stack_subnets
        }
        indices = [
            stack.resolve(cast(ec2.CfnSubnet, s.node.default_child).ipv6_cidr_block)["Fn::Select"][0]
            for s in vpc.dual_stack_subnets
        ]
        assert len(sources) == 1
        assert sorted(indices) == list(range(len(vpc.dual_stack_subnets)))

    def test_every_subnet_waits_for_the_block(self, stack):
        vpc = _vpc(stack, PUBLIC, ISOLATED)
        template = Template.from_stack(stack)
        cidr_id = _only_logical_id(template, "AWS::EC2::VPCCidrBlock")
        resources = template.to_json()["Resources"]

        for subnet in vpc.dual_stack_subnets:
            logical_id = stack.get_logical_id(cast(ec2.CfnSubnet, subnet.node.default_child))
            assert cidr_id in resources[logical_id].get("DependsOn", [])

    def test_synthesized_subnets_carry_ipv6(self, stack):
        _vpc(stack, PUBLIC, PRIVATE)
        template = Template.from_stack(stack)
        subnets = template.find_resources("AWS::EC2::Subnet")
        assert len(subnets) == 4
        assert all("Ipv6CidrBlock" in s["Properties"] for s in subnets.values())


class TestPublicSubnets:
    def test_reuses_existing_internet_gateway(self, stack):
        vpc = _vpc(stack, PUBLIC)
        template = Template.from_stack(stack)
        template.resource_count_is("AWS::EC2::InternetGateway", 1)
        assert vpc.ipv6_internet_gateway_id == vpc.internet_gateway_id

    def test_creates_gateway_when_vpc_has_none(self, stack):
        vpc = _vpc(stack, PUBLIC, create_internet_gateway=False)
        template = Template.from_stack(stack)
        template.resource_count_is("AWS::EC2::InternetGateway", 1)
        template.resource_count_is("AWS::EC2::VPCGatewayAttachment", 1)
        assert vpc.ipv6_internet_gateway_id is not None

    def test_default_route_through_internet_gateway(self, stack):
        vpc = _vpc(stack, PUBLIC)
        template = Template.from_stack(stack)
        igw_id = _only_logical_id(template, "AWS::EC2::InternetGateway")

        routes = _ipv6_routes(template)
        assert len(routes) == len(vpc.public_subnets)
        for route in routes.values():
            assert route["Properties"]["GatewayId"] == {"Ref": igw_id}

    @pytest.mark.parametrize("create_internet_gateway", [True, False])
    def test_default_route_waits_for_gateway_attachment(self, stack, create_internet_gateway):
        _vpc(stack, PUBLIC, create_internet_gateway=create_internet_gateway)
        template = Template.from_stack(stack)
        attachment_id = _only_logical_id(template, "AWS::EC2::VPCGatewayAttachment")

        routes = _ipv6_routes(template)
        assert routes
        for route in routes.values():
            assert attachment_id in route.get("DependsOn", [])


class TestPrivateSubnets:
    def test_default_route_through_egress_only_gateway(self, stack):
        vpc = _vpc(stack, PRIVATE, PUBLIC)
        template = Template.from_stack(stack)
        template.resource_count_is("AWS::EC2::EgressOnlyInternetGateway", 1)
        eigw_id = _only_logical_id(template, "AWS::EC2::EgressOnlyInternetGateway")

        egress_routes = [
            r for r in _ipv6_routes(template).values()
            if "EgressOnlyInternetGatewayId" in r["Properties"]
        ]
        assert len(egress_routes) == len(vpc.private_subnets)
        for route in egress_routes:
            assert route["Properties"]["EgressOnlyInternetGatewayId"] == {"Ref": eigw_id}
        assert vpc.egress_only_gateway_id is not None

    def test_no_egress_only_gateway_without_private_subnets(self, stack):
        vpc = _vpc(stack, PUBLIC, ISOLATED)
        Template.from_stack(stack).resource_count_is("AWS::EC2::EgressOnlyInternetGateway", 0)
        assert vpc.egress_only_gateway_id is None


class TestIsolatedSubnets:
    def test_isolated_subnets_get_no_default_route(self, stack):
        vpc = _vpc(stack, PUBLIC, PRIVATE, ISOLATED)
        template = Template.from_stack(stack)

        routes = _ipv6_routes(template)
        assert len(routes) == len(vpc.public_subnets) + len(vpc.private_subnets)

        isolated_tables = {
            stack.resolve(s.route_table.route_table_id)["Ref"] for s in vpc.isolated_subnets
        }
        for route in routes.values():
            assert route["Properties"]["RouteTableId"]["Ref"] not in isolated_tables

    @pytest.mark.parametrize("groups", [(ISOLATED,), (PUBLIC,), (PUBLIC, PRIVATE, ISOLATED)])
    def test_route_count_matches_routable_subnets(self, stack, groups):
        vpc = _vpc(stack, *groups)
        routes = _ipv6_routes(Template.from_stack(stack))
        assert len(routes) == len(vpc.public_subnets) + len(vpc.private_subnets)

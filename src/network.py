"""
Network Infrastructure
VPC with one public and one private subnet per AZ, NAT egress for private subnets
"""
import ipaddress
from typing import Any, Dict, List

import pulumi
import pulumi_aws as aws

from config import KANIKO_SECURITY_GROUP, PROJECT_NAME, Settings
from src.errors import ConfigurationError


def plan_subnets(vpc_cidr: str, az_count: int) -> Dict[str, List[str]]:
    """
    Split the VPC block into equal subnets: public ones first, then private

    Each subnet is four bits smaller than the VPC (a /16 gives /20s).
    """
    block = ipaddress.ip_network(vpc_cidr)
    new_prefix = block.prefixlen + 4
    if new_prefix > 28:
        raise ConfigurationError(f"{vpc_cidr} is too small to split into subnets")

    candidates = list(block.subnets(new_prefix=new_prefix))
    if len(candidates) < az_count * 2:
        raise ConfigurationError(f"{vpc_cidr} cannot hold {az_count * 2} subnets")

    return {
        "public": [str(c) for c in candidates[:az_count]],
        "private": [str(c) for c in candidates[az_count:az_count * 2]],
    }


def create_network(settings: Settings) -> Dict[str, Any]:
    """Create VPC, subnets across AZs, gateways, routes and the Kaniko security group"""
    tags = settings.common_tags
    plan = plan_subnets(settings.vpc_cidr, settings.availability_zone_count)

    azs = aws.get_availability_zones(state="available")
    if len(azs.names) < settings.availability_zone_count:
        raise ConfigurationError(
            f"Region {settings.aws_region} has {len(azs.names)} AZs, "
            f"{settings.availability_zone_count} requested")

    vpc = aws.ec2.Vpc("jenkins-vpc",
        cidr_block=settings.vpc_cidr,
        enable_dns_hostnames=True,
        enable_dns_support=True,
        tags={**tags, "Name": f"{PROJECT_NAME}-vpc"})

    igw = aws.ec2.InternetGateway("jenkins-igw",
        vpc_id=vpc.id,
        tags={**tags, "Name": f"{PROJECT_NAME}-igw"})

    public_subnets = []
    for i, cidr in enumerate(plan["public"]):
        subnet = aws.ec2.Subnet(f"public-subnet-{i+1}",
            vpc_id=vpc.id,
            cidr_block=cidr,
            availability_zone=azs.names[i],
            map_public_ip_on_launch=True,
            tags={**tags, "Name": f"{PROJECT_NAME}-public-{i+1}", "Type": "public"})
        public_subnets.append(subnet)

    private_subnets = []
    for i, cidr in enumerate(plan["private"]):
        subnet = aws.ec2.Subnet(f"private-subnet-{i+1}",
            vpc_id=vpc.id,
            cidr_block=cidr,
            availability_zone=azs.names[i],
            map_public_ip_on_launch=False,
            tags={**tags, "Name": f"{PROJECT_NAME}-private-{i+1}", "Type": "private"})
        private_subnets.append(subnet)

    public_route_table = aws.ec2.RouteTable("public-rt",
        vpc_id=vpc.id,
        routes=[aws.ec2.RouteTableRouteArgs(
            cidr_block="0.0.0.0/0",
            gateway_id=igw.id)],
        tags={**tags, "Name": f"{PROJECT_NAME}-public-rt"})

    for i, subnet in enumerate(public_subnets):
        aws.ec2.RouteTableAssociation(f"public-rta-{i+1}",
            subnet_id=subnet.id,
            route_table_id=public_route_table.id)

    # Single NAT gateway; private subnets only need outbound access
    nat_eip = aws.ec2.Eip("nat-eip",
        domain="vpc",
        tags={**tags, "Name": f"{PROJECT_NAME}-nat-eip"})

    nat_gateway = aws.ec2.NatGateway("nat-gateway",
        allocation_id=nat_eip.id,
        subnet_id=public_subnets[0].id,
        tags={**tags, "Name": f"{PROJECT_NAME}-nat"},
        opts=pulumi.ResourceOptions(depends_on=[igw]))

    private_route_table = aws.ec2.RouteTable("private-rt",
        vpc_id=vpc.id,
        routes=[aws.ec2.RouteTableRouteArgs(
            cidr_block="0.0.0.0/0",
            nat_gateway_id=nat_gateway.id)],
        tags={**tags, "Name": f"{PROJECT_NAME}-private-rt"})

    for i, subnet in enumerate(private_subnets):
        aws.ec2.RouteTableAssociation(f"private-rta-{i+1}",
            subnet_id=subnet.id,
            route_table_id=private_route_table.id)

    # Left without ingress; operators attach job-runner rules after the fact
    kaniko_sg = aws.ec2.SecurityGroup("kaniko-security-group",
        name=KANIKO_SECURITY_GROUP,
        description="Network boundary for Kaniko build tasks",
        vpc_id=vpc.id,
        egress=[aws.ec2.SecurityGroupEgressArgs(
            protocol="-1",
            from_port=0,
            to_port=0,
            cidr_blocks=["0.0.0.0/0"])],
        tags={**tags, "Name": KANIKO_SECURITY_GROUP})

    pulumi.log.info(
        f"Network: {settings.vpc_cidr} across {settings.availability_zone_count} AZs "
        f"(public {plan['public']}, private {plan['private']})")

    return {
        "vpc": vpc,
        "vpc_id": vpc.id,
        "public_subnets": public_subnets,
        "private_subnets": private_subnets,
        "public_subnet_ids": [s.id for s in public_subnets],
        "private_subnet_ids": [s.id for s in private_subnets],
        "nat_gateway": nat_gateway,
        "kaniko_security_group": kaniko_sg,
        "kaniko_security_group_id": kaniko_sg.id,
    }

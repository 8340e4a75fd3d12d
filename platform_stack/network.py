"""
Network Infrastructure
Either an existing VPC passed in through config, or a simple VPC with public subnets
"""

import ipaddress

from .graph import Ref, ResourceGraph


def public_subnet_cidrs(vpc_cidr: str, count: int = 2, prefix: int = 22):
    """Carve the first `count` /22 blocks out of the VPC range, or halves of a smaller VPC"""
    network = ipaddress.ip_network(vpc_cidr)
    blocks = network.subnets(new_prefix=max(prefix, network.prefixlen + 1))
    return [str(next(blocks)) for _ in range(count)]


def declare_network(graph: ResourceGraph, config):
    """
    Declare the network foundation

    Returns:
        Dict with vpc_id and subnet_ids (literals or Refs) and the names of
        declarations that must exist before nodes can join ("ready")
    """
    if not config.manages_network:
        return {
            "vpc_id": config.vpc_id,
            "subnet_ids": list(config.subnet_ids),
            "ready": [],
        }

    name = config.cluster_name
    tags = config.common_tags

    graph.declare("vpc", "aws:ec2:Vpc", {
        "cidr_block": config.vpc_cidr,
        "enable_dns_hostnames": True,
        "enable_dns_support": True,
        "tags": {**tags, "Name": f"{name}-vpc"},
    })

    graph.declare("igw", "aws:ec2:InternetGateway", {
        "vpc_id": Ref("vpc", "id"),
        "tags": {**tags, "Name": f"{name}-igw"},
    })

    subnet_names = []
    zones = ("a", "b")
    for number, (zone, cidr) in enumerate(zip(zones, public_subnet_cidrs(config.vpc_cidr)), start=1):
        subnet = f"public-subnet-{number}"
        graph.declare(subnet, "aws:ec2:Subnet", {
            "vpc_id": Ref("vpc", "id"),
            "cidr_block": cidr,
            "availability_zone": f"{config.aws_region}{zone}",
            "map_public_ip_on_launch": True,
            "tags": {
                **tags,
                "Name": f"{name}-public-{number}",
                "kubernetes.io/role/elb": "1",
            },
        })
        subnet_names.append(subnet)

    # Single route table for public access
    graph.declare("public-rt", "aws:ec2:RouteTable", {
        "vpc_id": Ref("vpc", "id"),
        "routes": [{
            "cidr_block": "0.0.0.0/0",
            "gateway_id": Ref("igw", "id"),
        }],
        "tags": {**tags, "Name": f"{name}-public-rt"},
    })

    associations = []
    for subnet in subnet_names:
        association = graph.declare(f"{subnet}-rt", "aws:ec2:RouteTableAssociation", {
            "subnet_id": Ref(subnet, "id"),
            "route_table_id": Ref("public-rt", "id"),
        })
        associations.append(association.name)

    return {
        "vpc_id": Ref("vpc", "id"),
        "subnet_ids": [Ref(subnet, "id") for subnet in subnet_names],
        "ready": associations,
    }

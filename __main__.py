"""
Microservices platform on EKS
VPC -> cluster -> add-ons -> workloads -> HTTPS ingress, declared as one dependency graph
"""
import pulumi_aws as aws

from config import get_config
from platform_stack import deploy


def lookup_default_network():
    """Account default VPC and its subnets; only consulted when use_default_vpc is set"""
    vpc = aws.ec2.get_vpc(default=True)
    subnets = aws.ec2.get_subnets(filters=[aws.ec2.GetSubnetsFilterArgs(
        name="vpc-id",
        values=[vpc.id],
    )])
    return vpc.id, sorted(subnets.ids)


# Configuration
config = get_config(network_lookup=lookup_default_network)

# Declarations, dependency order and exports
deploy(config)

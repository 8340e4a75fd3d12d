"""
EKS Cluster Core
Cluster and node IAM roles, the control plane, its compute, the IAM OIDC
provider and the Kubernetes provider bound to the new cluster
"""

import json

from .graph import Derived, Ref, ResourceGraph

CLUSTER = "cluster"
NODE_GROUP = "node-group"
OIDC_PROVIDER = "oidc-provider"
K8S_PROVIDER = "k8s-provider"

# AWS EKS root CA thumbprint (same across regions)
EKS_OIDC_THUMBPRINT = "9e99a48a9960b14926bb7f3b02e22da2b0ab7280"

CLUSTER_POLICIES = {
    "node-group": [
        ("cluster-policy", "arn:aws:iam::aws:policy/AmazonEKSClusterPolicy"),
    ],
    "auto": [
        ("cluster-policy", "arn:aws:iam::aws:policy/AmazonEKSClusterPolicy"),
        ("compute-policy", "arn:aws:iam::aws:policy/AmazonEKSComputePolicy"),
        ("block-storage-policy", "arn:aws:iam::aws:policy/AmazonEKSBlockStoragePolicy"),
        ("load-balancing-policy", "arn:aws:iam::aws:policy/AmazonEKSLoadBalancingPolicy"),
        ("networking-policy", "arn:aws:iam::aws:policy/AmazonEKSNetworkingPolicy"),
    ],
}

NODE_POLICIES = {
    "node-group": [
        ("node-policy-worker", "arn:aws:iam::aws:policy/AmazonEKSWorkerNodePolicy"),
        ("node-policy-cni", "arn:aws:iam::aws:policy/AmazonEKS_CNI_Policy"),
        ("node-policy-ecr", "arn:aws:iam::aws:policy/AmazonEC2ContainerRegistryReadOnly"),
    ],
    "auto": [
        ("node-policy-worker", "arn:aws:iam::aws:policy/AmazonEKSWorkerNodeMinimalPolicy"),
        ("node-policy-ecr", "arn:aws:iam::aws:policy/AmazonEC2ContainerRegistryPullOnly"),
    ],
}


def service_assume_role_policy(service: str, actions=("sts:AssumeRole",)) -> str:
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [{
            "Action": list(actions),
            "Effect": "Allow",
            "Principal": {"Service": service}
        }]
    })


def render_kubeconfig(endpoint: str, ca_data: str, cluster_name: str, region: str) -> str:
    """Kubeconfig that authenticates through `aws eks get-token`"""
    return f"""apiVersion: v1
clusters:
- cluster:
    certificate-authority-data: {ca_data}
    server: {endpoint}
  name: {cluster_name}
contexts:
- context:
    cluster: {cluster_name}
    user: {cluster_name}
  name: {cluster_name}
current-context: {cluster_name}
kind: Config
users:
- name: {cluster_name}
  user:
    exec:
      apiVersion: client.authentication.k8s.io/v1beta1
      command: aws
      args:
        - eks
        - get-token
        - --cluster-name
        - {cluster_name}
        - --region
        - {region}
"""


def _declare_role(graph: ResourceGraph, name, service, policies, tags, actions=("sts:AssumeRole",)):
    graph.declare(name, "aws:iam:Role", {
        "assume_role_policy": service_assume_role_policy(service, actions),
        "tags": tags,
    })
    attachments = []
    for attachment, policy_arn in policies:
        graph.declare(attachment, "aws:iam:RolePolicyAttachment", {
            "policy_arn": policy_arn,
            "role": Ref(name, "name"),
        })
        attachments.append(attachment)
    return attachments


def declare_cluster(graph: ResourceGraph, config, network):
    """
    Declare the control plane and the cluster-scoped Kubernetes provider

    Args:
        graph: Graph to declare into
        config: Run configuration
        network: Result of declare_network()

    Returns:
        Dict with logical names of the cluster, OIDC provider and k8s provider,
        and Refs to the cluster's OIDC issuer and name
    """
    mode = config.cluster_mode
    tags = config.common_tags
    auto = mode == "auto"

    # Auto Mode needs sts:TagSession on the cluster role
    cluster_actions = ("sts:AssumeRole", "sts:TagSession") if auto else ("sts:AssumeRole",)
    cluster_attachments = _declare_role(
        graph, "eks-cluster-role", "eks.amazonaws.com", CLUSTER_POLICIES[mode], tags, cluster_actions)
    node_attachments = _declare_role(
        graph, "eks-node-role", "ec2.amazonaws.com", NODE_POLICIES[mode], tags)

    cluster_attributes = {
        "name": config.cluster_name,
        "role_arn": Ref("eks-cluster-role", "arn"),
        "version": config.cluster_version,
        "vpc_config": {
            "subnet_ids": network["subnet_ids"],
            "endpoint_public_access": True,
            "endpoint_private_access": True,
        },
        "access_config": {
            "authentication_mode": "API" if auto else "API_AND_CONFIG_MAP",
            "bootstrap_cluster_creator_admin_permissions": True,
        },
        "enabled_cluster_log_types": ["api", "audit", "authenticator"],
        "tags": {**tags, "Name": config.cluster_name},
    }
    if auto:
        cluster_attributes.update({
            "bootstrap_self_managed_addons": False,
            "compute_config": {
                "enabled": True,
                "node_pools": ["general-purpose", "system"],
                "node_role_arn": Ref("eks-node-role", "arn"),
            },
            "kubernetes_network_config": {
                "elastic_load_balancing": {"enabled": True},
            },
            "storage_config": {
                "block_storage": {"enabled": True},
            },
        })
        cluster_depends_on = cluster_attachments + node_attachments
    else:
        cluster_depends_on = cluster_attachments

    graph.declare(CLUSTER, "aws:eks:Cluster", cluster_attributes,
                  depends_on=cluster_depends_on + network["ready"])

    # Anything that schedules pods waits on this set
    compute_ready = [CLUSTER]
    if not auto:
        graph.declare(NODE_GROUP, "aws:eks:NodeGroup", {
            "cluster_name": Ref(CLUSTER, "name"),
            "node_role_arn": Ref("eks-node-role", "arn"),
            "subnet_ids": network["subnet_ids"],
            "instance_types": [config.instance_type],
            "capacity_type": "ON_DEMAND",
            "scaling_config": {
                "desired_size": config.node_count,
                "min_size": config.node_count,
                "max_size": config.node_count,
            },
            "tags": {**tags, "Name": f"{config.cluster_name}-nodes"},
        }, depends_on=node_attachments + network["ready"])
        compute_ready = [NODE_GROUP]

    issuer = Ref(CLUSTER, "identities", 0, "oidcs", 0, "issuer")

    # EKS reports an issuer but does not register it in IAM
    graph.declare(OIDC_PROVIDER, "aws:iam:OpenIdConnectProvider", {
        "url": issuer,
        "client_id_lists": ["sts.amazonaws.com"],
        "thumbprint_lists": [EKS_OIDC_THUMBPRINT],
        "tags": tags,
    })

    kubeconfig = Derived(render_kubeconfig,
                         [Ref(CLUSTER, "endpoint"),
                          Ref(CLUSTER, "certificate_authority", "data"),
                          Ref(CLUSTER, "name")],
                         region=config.aws_region)

    graph.declare(K8S_PROVIDER, "kubernetes:Provider", {
        "kubeconfig": kubeconfig,
    }, depends_on=compute_ready)

    return {
        "cluster": CLUSTER,
        "oidc_provider": OIDC_PROVIDER,
        "provider": K8S_PROVIDER,
        "issuer": issuer,
        "cluster_name": Ref(CLUSTER, "name"),
        "kubeconfig": kubeconfig,
    }

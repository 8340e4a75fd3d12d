"""
Materialization
Turns a ResourceGraph into Pulumi resources; Pulumi's engine does the diffing and applying
"""

from typing import Any, Dict

import pulumi
import pulumi_aws as aws
import pulumi_kubernetes as k8s

from .errors import DeclarationError
from .graph import PROVIDER, Derived, Ref, ResourceGraph

# Resource constructors by declaration kind. Looked up lazily so the SDK
# modules can be patched in tests.
RESOURCE_TYPES = {
    # Network
    "aws:ec2:Vpc": lambda: aws.ec2.Vpc,
    "aws:ec2:InternetGateway": lambda: aws.ec2.InternetGateway,
    "aws:ec2:Subnet": lambda: aws.ec2.Subnet,
    "aws:ec2:RouteTable": lambda: aws.ec2.RouteTable,
    "aws:ec2:RouteTableAssociation": lambda: aws.ec2.RouteTableAssociation,
    # IAM
    "aws:iam:Role": lambda: aws.iam.Role,
    "aws:iam:Policy": lambda: aws.iam.Policy,
    "aws:iam:RolePolicyAttachment": lambda: aws.iam.RolePolicyAttachment,
    "aws:iam:OpenIdConnectProvider": lambda: aws.iam.OpenIdConnectProvider,
    # EKS
    "aws:eks:Cluster": lambda: aws.eks.Cluster,
    "aws:eks:NodeGroup": lambda: aws.eks.NodeGroup,
    # Kubernetes
    "kubernetes:Provider": lambda: k8s.Provider,
    "kubernetes:helm.sh/v3:Release": lambda: k8s.helm.v3.Release,
    "kubernetes:yaml:ConfigFile": lambda: k8s.yaml.ConfigFile,
    "kubernetes:core/v1:Namespace": lambda: k8s.core.v1.Namespace,
    "kubernetes:core/v1:Service": lambda: k8s.core.v1.Service,
    "kubernetes:core/v1:ServiceAccount": lambda: k8s.core.v1.ServiceAccount,
    "kubernetes:core/v1:Service#get": lambda: get_service,
    "kubernetes:apps/v1:Deployment": lambda: k8s.apps.v1.Deployment,
    "kubernetes:autoscaling/v2:HorizontalPodAutoscaler": lambda: k8s.autoscaling.v2.HorizontalPodAutoscaler,
    "kubernetes:networking.k8s.io/v1:Ingress": lambda: k8s.networking.v1.Ingress,
    "kubernetes:apiextensions:CustomResource": lambda: k8s.apiextensions.CustomResource,
}


def get_service(name, id, opts=None):
    """Read an existing Service, e.g. one created by a Helm chart"""
    return k8s.core.v1.Service.get(name, id, opts=opts)


def _read(resource, path):
    value = resource
    for step in path:
        value = value[step] if isinstance(step, int) else getattr(value, step)
    return value


def _apply_derived(derived: Derived, values):
    return pulumi.Output.all(*values).apply(lambda args: derived.evaluate(*args))


def resolve(value, resources: Dict[str, Any]):
    """Replace Ref / Derived placeholders with the outputs of created resources"""
    if isinstance(value, Ref):
        return _read(resources[value.target], value.path)
    if isinstance(value, Derived):
        return _apply_derived(value, [resolve(ref, resources) for ref in value.refs])
    if isinstance(value, dict):
        return {key: resolve(item, resources) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [resolve(item, resources) for item in value]
    return value


def create_resource(declaration, resources: Dict[str, Any]):
    """Create the Pulumi resource for one declaration whose predecessors already exist"""
    factory = RESOURCE_TYPES.get(declaration.kind)
    if factory is None:
        raise DeclarationError(declaration.name, f"unsupported resource kind {declaration.kind!r}")

    depends_on = [resources[name] for name, kind in declaration.edges() if kind != PROVIDER]
    provider = resources[declaration.provider] if declaration.provider else None
    opts = pulumi.ResourceOptions(provider=provider, depends_on=depends_on)

    attributes = resolve(declaration.attributes, resources)
    return factory()(declaration.name, opts=opts, **attributes)


def materialize(graph: ResourceGraph) -> Dict[str, Any]:
    """
    Create every declaration in dependency order and export the graph outputs

    Args:
        graph: Fully built resource graph

    Returns:
        Dict of logical name -> Pulumi resource
    """
    order = graph.topological_order()
    resources: Dict[str, Any] = {}
    for declaration in order:
        pulumi.log.debug(
            f"declaring {declaration.name} ({declaration.kind}) after "
            f"{', '.join(declaration.predecessors) or 'nothing'}")
        resources[declaration.name] = create_resource(declaration, resources)

    for name, value in graph.outputs.items():
        resolved = resolve(value, resources)
        if graph.is_secret_output(name):
            resolved = pulumi.Output.secret(resolved)
        pulumi.export(name, resolved)

    pulumi.log.info(f"declared {len(resources)} resources and {len(graph.outputs)} outputs")
    return resources

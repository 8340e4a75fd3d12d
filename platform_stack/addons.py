"""
Platform add-ons
Ingress / gateway controller, cert-manager with a Let's Encrypt issuer,
Gateway API CRDs and the AWS Load Balancer Controller
"""

from .graph import ResourceGraph
from .identity import declare_lb_controller_identity
from .exposure import GATEWAY_CLASS_NAME, GATEWAY_NAME
from .workloads import APP_NAMESPACE

ACME_SERVER = "https://acme-v02.api.letsencrypt.org/directory"
ISSUER_NAME = "letsencrypt-prod"

INGRESS_NGINX_VERSION = "4.11.3"
CERT_MANAGER_VERSION = "v1.16.2"
LB_CONTROLLER_VERSION = "1.10.1"
GATEWAY_API_VERSION = "v1.2.1"
NGINX_GATEWAY_FABRIC_VERSION = "1.6.2"

INGRESS_NGINX_NAMESPACE = "ingress-nginx"
GATEWAY_CONTROLLER_NAMESPACE = "nginx-gateway"
GATEWAY_CONTROLLER_RELEASE = "ngf"


def load_balancer_service_values(config, lb_controller: bool):
    """Service settings so the controller's LoadBalancer gets an internet-facing NLB"""
    if config.cluster_mode == "auto":
        return {
            "type": "LoadBalancer",
            "loadBalancerClass": "eks.amazonaws.com/nlb",
            "annotations": {
                "service.beta.kubernetes.io/aws-load-balancer-scheme": "internet-facing",
            },
        }
    if lb_controller:
        return {
            "type": "LoadBalancer",
            "annotations": {
                "service.beta.kubernetes.io/aws-load-balancer-type": "external",
                "service.beta.kubernetes.io/aws-load-balancer-nlb-target-type": "ip",
                "service.beta.kubernetes.io/aws-load-balancer-scheme": "internet-facing",
            },
        }
    return {"type": "LoadBalancer"}


def acme_solver(config):
    if config.exposure_mode == "gateway":
        return {
            "http01": {
                "gatewayHTTPRoute": {
                    "parentRefs": [{
                        "name": GATEWAY_NAME,
                        "namespace": APP_NAMESPACE,
                        "kind": "Gateway",
                    }],
                },
            },
        }
    return {"http01": {"ingress": {"ingressClassName": "nginx"}}}


def declare_addons(graph: ResourceGraph, config, cluster, network):
    """
    Declare the platform add-ons through the cluster's Kubernetes provider

    Returns:
        Dict with the logical names later stages depend on
    """
    gateway = config.exposure_mode == "gateway"
    lb_controller = config.cluster_mode == "node-group" and config.enable_lb_controller
    result = {"lb_controller": None, "gateway_crds": None}

    if lb_controller:
        identity = declare_lb_controller_identity(graph, config, cluster)

    with graph.bind_provider(cluster["provider"]):
        controller_depends_on = []
        if lb_controller:
            graph.declare("aws-load-balancer-controller", "kubernetes:helm.sh/v3:Release", {
                "name": "aws-load-balancer-controller",
                "chart": "aws-load-balancer-controller",
                "version": LB_CONTROLLER_VERSION,
                "repository_opts": {"repo": "https://aws.github.io/eks-charts"},
                "namespace": "kube-system",
                "values": {
                    "clusterName": config.cluster_name,
                    "region": config.aws_region,
                    "vpcId": network["vpc_id"],
                    "serviceAccount": {
                        "create": False,
                        "name": identity["service_account_name"],
                    },
                },
            }, depends_on=[identity["service_account"]])
            result["lb_controller"] = "aws-load-balancer-controller"
            controller_depends_on.append("aws-load-balancer-controller")

        cert_manager_depends_on = []
        cert_manager_values = {"crds": {"enabled": True}}
        if gateway:
            graph.declare("gateway-api-crds", "kubernetes:yaml:ConfigFile", {
                "file": ("https://github.com/kubernetes-sigs/gateway-api/releases/download/"
                         f"{GATEWAY_API_VERSION}/standard-install.yaml"),
            })
            result["gateway_crds"] = "gateway-api-crds"
            cert_manager_depends_on.append("gateway-api-crds")
            controller_depends_on.append("gateway-api-crds")
            cert_manager_values["config"] = {
                "apiVersion": "controller.config.cert-manager.io/v1alpha1",
                "kind": "ControllerConfiguration",
                "enableGatewayAPI": True,
            }

        # Deploy cert-manager for Let's Encrypt certificates
        graph.declare("cert-manager", "kubernetes:helm.sh/v3:Release", {
            "chart": "cert-manager",
            "version": CERT_MANAGER_VERSION,
            "repository_opts": {"repo": "https://charts.jetstack.io"},
            "namespace": "cert-manager",
            "create_namespace": True,
            "values": cert_manager_values,
        }, depends_on=cert_manager_depends_on)

        service_values = load_balancer_service_values(config, lb_controller)
        if gateway:
            graph.declare("nginx-gateway-fabric", "kubernetes:helm.sh/v3:Release", {
                "name": GATEWAY_CONTROLLER_RELEASE,
                "chart": "oci://ghcr.io/nginx/charts/nginx-gateway-fabric",
                "version": NGINX_GATEWAY_FABRIC_VERSION,
                "namespace": GATEWAY_CONTROLLER_NAMESPACE,
                "create_namespace": True,
                "values": {
                    "nginxGateway": {"gatewayClassName": GATEWAY_CLASS_NAME},
                    "service": service_values,
                },
            }, depends_on=controller_depends_on)
            result["controller"] = "nginx-gateway-fabric"
        else:
            # Deploy NGINX Ingress Controller using Helm
            graph.declare("nginx-ingress", "kubernetes:helm.sh/v3:Release", {
                "name": "ingress-nginx",
                "chart": "ingress-nginx",
                "version": INGRESS_NGINX_VERSION,
                "repository_opts": {"repo": "https://kubernetes.github.io/ingress-nginx"},
                "namespace": INGRESS_NGINX_NAMESPACE,
                "create_namespace": True,
                "values": {
                    "controller": {
                        "service": service_values,
                        "metrics": {"enabled": True},
                    },
                },
            }, depends_on=controller_depends_on)
            result["controller"] = "nginx-ingress"

        graph.declare("letsencrypt-issuer", "kubernetes:apiextensions:CustomResource", {
            "api_version": "cert-manager.io/v1",
            "kind": "ClusterIssuer",
            "metadata": {"name": ISSUER_NAME},
            "spec": {
                "acme": {
                    "server": ACME_SERVER,
                    "email": config.letsencrypt_email,
                    "privateKeySecretRef": {"name": ISSUER_NAME},
                    "solvers": [acme_solver(config)],
                },
            },
        }, depends_on=["cert-manager"])
        result["issuer"] = "letsencrypt-issuer"

    return result

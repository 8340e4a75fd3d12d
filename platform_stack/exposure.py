"""
Traffic exposure
HTTPS entry point for the app: an NGINX Ingress, or a Gateway API Gateway with HTTPRoutes
"""

from .graph import Derived, Ref, ResourceGraph

GATEWAY_NAME = "app-gateway"
TLS_SECRET_NAME = "app-tls-cert"
GATEWAY_SERVICE = "gateway-service"
GATEWAY_CLASS_NAME = "nginx"


def controller_service_id(namespace: str, release_name: str, chart: str) -> str:
    """Namespaced id of the Service a Helm chart creates for its controller"""
    fullname = release_name if chart in release_name else f"{release_name}-{chart}"
    return f"{namespace}/{fullname}"


def load_balancer_command(namespace: str, service: str) -> str:
    return (f"kubectl get svc -n {namespace} {service} "
            "-o jsonpath='{.status.loadBalancer.ingress[0].hostname}'")


def _path(path, service_name):
    return {
        "path": path,
        "path_type": "Prefix",
        "backend": {
            "service": {
                "name": service_name,
                "port": {"number": 80},
            },
        },
    }


def declare_ingress(graph: ResourceGraph, config, addons, workloads):
    # Create Ingress with HTTPS and Let's Encrypt
    graph.declare("app-ingress", "kubernetes:networking.k8s.io/v1:Ingress", {
        "metadata": {
            "name": "app-ingress",
            "namespace": Ref(workloads["namespace"], "metadata", "name"),
            "annotations": {
                "cert-manager.io/cluster-issuer": "letsencrypt-prod",
                "nginx.ingress.kubernetes.io/ssl-redirect": "true",
            },
        },
        "spec": {
            "ingress_class_name": "nginx",
            "tls": [{
                "hosts": [config.domain],
                "secret_name": TLS_SECRET_NAME,
            }],
            "rules": [{
                "host": config.domain,
                "http": {
                    "paths": [
                        _path("/api", workloads["backend_service_name"]),
                        _path("/", workloads["frontend_service_name"]),
                    ],
                },
            }],
        },
    }, depends_on=[addons["controller"], addons["issuer"]])
    return {"entrypoint": "app-ingress"}


def _route(graph, name, config, namespace, path, service_name, depends_on):
    graph.declare(name, "kubernetes:apiextensions:CustomResource", {
        "api_version": "gateway.networking.k8s.io/v1",
        "kind": "HTTPRoute",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {
            "parentRefs": [{"name": GATEWAY_NAME, "sectionName": "https"}],
            "hostnames": [config.domain],
            "rules": [{
                "matches": [{"path": {"type": "PathPrefix", "value": path}}],
                "backendRefs": [{"name": service_name, "port": 80}],
            }],
        },
    }, depends_on=depends_on)


def declare_gateway(graph: ResourceGraph, config, addons, workloads):
    namespace = Ref(workloads["namespace"], "metadata", "name")

    graph.declare(GATEWAY_NAME, "kubernetes:apiextensions:CustomResource", {
        "api_version": "gateway.networking.k8s.io/v1",
        "kind": "Gateway",
        "metadata": {
            "name": GATEWAY_NAME,
            "namespace": namespace,
            "annotations": {"cert-manager.io/cluster-issuer": "letsencrypt-prod"},
        },
        "spec": {
            "gatewayClassName": GATEWAY_CLASS_NAME,
            "listeners": [
                {
                    "name": "http",
                    "protocol": "HTTP",
                    "port": 80,
                    "hostname": config.domain,
                },
                {
                    "name": "https",
                    "protocol": "HTTPS",
                    "port": 443,
                    "hostname": config.domain,
                    "tls": {
                        "mode": "Terminate",
                        "certificateRefs": [{"kind": "Secret", "name": TLS_SECRET_NAME}],
                    },
                },
            ],
        },
    }, depends_on=[addons["gateway_crds"], addons["controller"], addons["issuer"]])

    # Plain HTTP only redirects; ACME solver routes match more specific paths
    graph.declare("http-redirect-route", "kubernetes:apiextensions:CustomResource", {
        "api_version": "gateway.networking.k8s.io/v1",
        "kind": "HTTPRoute",
        "metadata": {"name": "http-redirect", "namespace": namespace},
        "spec": {
            "parentRefs": [{"name": GATEWAY_NAME, "sectionName": "http"}],
            "hostnames": [config.domain],
            "rules": [{
                "filters": [{
                    "type": "RequestRedirect",
                    "requestRedirect": {"scheme": "https", "statusCode": 301},
                }],
            }],
        },
    }, depends_on=[GATEWAY_NAME])

    _route(graph, "backend-route", config, namespace, "/api",
           workloads["backend_service_name"], depends_on=[GATEWAY_NAME])
    _route(graph, "frontend-route", config, namespace, "/",
           workloads["frontend_service_name"], depends_on=[GATEWAY_NAME])

    # Read back the controller's LoadBalancer service to report its hostname
    graph.declare(GATEWAY_SERVICE, "kubernetes:core/v1:Service#get", {
        "id": Derived(controller_service_id,
                      [Ref(addons["controller"], "status", "namespace"),
                       Ref(addons["controller"], "status", "name")],
                      chart="nginx-gateway-fabric"),
    }, depends_on=[GATEWAY_NAME])

    return {
        "entrypoint": GATEWAY_NAME,
        "load_balancer_hostname": Ref(GATEWAY_SERVICE, "status", "load_balancer", "ingress", 0, "hostname"),
    }


def declare_exposure(graph: ResourceGraph, config, cluster, addons, workloads):
    """Declare the traffic entry point for the configured exposure mode"""
    with graph.bind_provider(cluster["provider"]):
        if config.exposure_mode == "gateway":
            return declare_gateway(graph, config, addons, workloads)
        return declare_ingress(graph, config, addons, workloads)

"""
Stack composition
Builds the full declaration graph for one run, leaves first:
network -> cluster -> k8s provider -> add-ons / identity -> workloads -> exposure
"""

import pulumi

from .addons import INGRESS_NGINX_NAMESPACE, declare_addons
from .cluster import declare_cluster
from .exposure import declare_exposure, load_balancer_command
from .graph import ResourceGraph
from .materialize import materialize
from .network import declare_network
from .workloads import declare_workloads


def build_graph(config) -> ResourceGraph:
    """Declare every resource of the platform; performs no I/O"""
    graph = ResourceGraph()

    # 1. Network foundation
    network = declare_network(graph, config)

    # 2-3. Control plane and the provider bound to it
    cluster = declare_cluster(graph, config, network)

    # 4-5. Add-ons and identity bindings
    addons = declare_addons(graph, config, cluster, network)

    # 6. Application workloads
    workloads = declare_workloads(graph, config, cluster)

    # 7. Traffic exposure
    exposure = declare_exposure(graph, config, cluster, addons, workloads)

    # Exports
    graph.output("kubeconfig", cluster["kubeconfig"], secret=True)
    graph.output("cluster_name", cluster["cluster_name"])
    graph.output("app_url", config.app_url)
    if config.exposure_mode == "gateway":
        graph.output("load_balancer_hostname", exposure["load_balancer_hostname"])
    else:
        graph.output("get_load_balancer_command",
                     load_balancer_command(INGRESS_NGINX_NAMESPACE, "ingress-nginx-controller"))
    return graph


def deploy(config):
    """Build the graph and hand it to Pulumi"""
    graph = build_graph(config)
    pulumi.log.info(
        f"{config.cluster_name}: {len(graph)} declarations "
        f"({config.cluster_mode} cluster, {config.exposure_mode} exposure), "
        f"fingerprint {graph.fingerprint()[:12]}")
    return materialize(graph)

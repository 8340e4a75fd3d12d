"""
Application workloads
Redis cache, backend API with a CPU autoscaler, and the frontend
"""

from .graph import Ref, ResourceGraph

APP_NAMESPACE = "microservices-app"

BACKEND_PORT = 5678


def _deployment(graph, name, namespace, image, replicas, container_port, resources,
                env=None, args=None):
    labels = {"app": name}
    container = {
        "name": name,
        "image": image,
        "ports": [{"container_port": container_port}],
        "resources": resources,
    }
    if args:
        container["args"] = list(args)
    if env:
        container["env"] = [{"name": key, "value": value} for key, value in env.items()]

    graph.declare(name, "kubernetes:apps/v1:Deployment", {
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": labels,
        },
        "spec": {
            "replicas": replicas,
            "selector": {"match_labels": labels},
            "template": {
                "metadata": {"labels": labels},
                "spec": {"containers": [container]},
            },
        },
    })


def _service(graph, name, namespace, port, target_port):
    logical_name = f"{name}-service"
    graph.declare(logical_name, "kubernetes:core/v1:Service", {
        "metadata": {
            "name": name,
            "namespace": namespace,
        },
        "spec": {
            "selector": {"app": name},
            "ports": [{"port": port, "target_port": target_port}],
            "type": "ClusterIP",
        },
    })
    return logical_name


def autoscaler_spec(deployment_name, min_replicas: int, max_replicas: int, cpu_target: int):
    return {
        "scale_target_ref": {
            "api_version": "apps/v1",
            "kind": "Deployment",
            "name": deployment_name,
        },
        "min_replicas": min_replicas,
        "max_replicas": max_replicas,
        "metrics": [{
            "type": "Resource",
            "resource": {
                "name": "cpu",
                "target": {
                    "type": "Utilization",
                    "average_utilization": cpu_target,
                },
            },
        }],
    }


def declare_workloads(graph: ResourceGraph, config, cluster):
    """
    Declare the application namespace and its workloads

    Returns:
        Dict with namespace and service logical names plus the in-cluster service names
    """
    with graph.bind_provider(cluster["provider"]):
        graph.declare("app-namespace", "kubernetes:core/v1:Namespace", {
            "metadata": {"name": APP_NAMESPACE},
        })
        namespace = Ref("app-namespace", "metadata", "name")

        # Deploy Redis cache
        _deployment(graph, "redis", namespace, config.redis_image,
                    replicas=1, container_port=6379,
                    resources={
                        "requests": {"cpu": "100m", "memory": "128Mi"},
                        "limits": {"cpu": "200m", "memory": "256Mi"},
                    })
        _service(graph, "redis", namespace, port=6379, target_port=6379)

        # Backend API
        _deployment(graph, "backend", namespace, config.backend_image,
                    replicas=config.hpa_min_replicas, container_port=BACKEND_PORT,
                    args=["-text=Backend API v1.0", f"-listen=:{BACKEND_PORT}"],
                    env={"REDIS_HOST": "redis", "REDIS_PORT": "6379"},
                    resources={
                        "requests": {"cpu": "100m", "memory": "128Mi"},
                        "limits": {"cpu": "500m", "memory": "512Mi"},
                    })
        backend_service = _service(graph, "backend", namespace, port=80, target_port=BACKEND_PORT)

        graph.declare("backend-hpa", "kubernetes:autoscaling/v2:HorizontalPodAutoscaler", {
            "metadata": {
                "name": "backend-hpa",
                "namespace": namespace,
            },
            "spec": autoscaler_spec(Ref("backend", "metadata", "name"),
                                    config.hpa_min_replicas,
                                    config.hpa_max_replicas,
                                    config.hpa_cpu_target),
        })

        # Frontend
        _deployment(graph, "frontend", namespace, config.frontend_image,
                    replicas=2, container_port=80,
                    env={"BACKEND_URL": "http://backend"},
                    resources={
                        "requests": {"cpu": "50m", "memory": "64Mi"},
                        "limits": {"cpu": "200m", "memory": "256Mi"},
                    })
        frontend_service = _service(graph, "frontend", namespace, port=80, target_port=80)

    return {
        "namespace": "app-namespace",
        "backend_service": backend_service,
        "frontend_service": frontend_service,
        "backend_service_name": Ref(backend_service, "metadata", "name"),
        "frontend_service_name": Ref(frontend_service, "metadata", "name"),
    }

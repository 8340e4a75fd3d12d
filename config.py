"""
Configuration management for the microservices EKS platform
Values are read once from Pulumi stack config and handed to the graph builder
"""

import ipaddress
import types

import pulumi
from typing import Callable, Dict, List, Optional, Tuple

from platform_stack.errors import ConfigurationError

# Smallest VPC that still holds two /28 public subnets
MAX_VPC_PREFIX = 27

CLUSTER_MODES = ("node-group", "auto")
EXPOSURE_MODES = ("ingress", "gateway")


class Config:
    """Immutable configuration bundle for one provisioning run"""

    def __init__(self,
                 aws_region: str = "us-east-1",
                 cluster_name: str = "eks-cluster",
                 cluster_version: str = "1.31",
                 domain: str = "example.com",
                 letsencrypt_email: str = "admin@example.com",
                 cluster_mode: str = "node-group",
                 exposure_mode: str = "ingress",
                 instance_type: str = "t3.small",
                 node_count: int = 3,
                 vpc_id: Optional[str] = None,
                 subnet_ids: Optional[List[str]] = None,
                 vpc_cidr: str = "10.0.0.0/16",
                 backend_image: str = "hashicorp/http-echo:latest",
                 frontend_image: str = "nginx:alpine",
                 redis_image: str = "redis:7-alpine",
                 hpa_min_replicas: int = 2,
                 hpa_max_replicas: int = 10,
                 hpa_cpu_target: int = 70,
                 enable_lb_controller: bool = True,
                 additional_tags: Optional[Dict[str, str]] = None):
        # AWS Configuration
        self.aws_region = aws_region

        # Cluster Configuration
        self.cluster_name = cluster_name
        self.cluster_version = cluster_version
        self.cluster_mode = cluster_mode
        self.instance_type = instance_type
        self.node_count = node_count

        # Network Configuration
        self.vpc_id = vpc_id
        self.subnet_ids = tuple(subnet_ids or ())
        self.vpc_cidr = vpc_cidr

        # Traffic exposure
        self.domain = domain
        self.letsencrypt_email = letsencrypt_email
        self.exposure_mode = exposure_mode
        self.enable_lb_controller = enable_lb_controller

        # Workloads
        self.backend_image = backend_image
        self.frontend_image = frontend_image
        self.redis_image = redis_image
        self.hpa_min_replicas = hpa_min_replicas
        self.hpa_max_replicas = hpa_max_replicas
        self.hpa_cpu_target = hpa_cpu_target

        self.additional_tags = types.MappingProxyType(dict(additional_tags or {}))

        self.validate()
        self._frozen = True

    def __setattr__(self, name, value):
        if getattr(self, "_frozen", False):
            raise AttributeError(f"Config is read-only for the run: cannot set {name!r}")
        super().__setattr__(name, value)

    def validate(self) -> None:
        """Reject bundles the graph builder cannot turn into a sane graph"""
        if self.cluster_mode not in CLUSTER_MODES:
            raise ConfigurationError(
                f"cluster_mode must be one of {', '.join(CLUSTER_MODES)}, got {self.cluster_mode!r}")
        if self.exposure_mode not in EXPOSURE_MODES:
            raise ConfigurationError(
                f"exposure_mode must be one of {', '.join(EXPOSURE_MODES)}, got {self.exposure_mode!r}")
        if not self.domain or not self.domain.strip():
            raise ConfigurationError("domain must not be empty")
        if not self.letsencrypt_email or not self.letsencrypt_email.strip():
            raise ConfigurationError("letsencryptEmail must not be empty")
        if self.node_count < 1:
            raise ConfigurationError(f"node_count must be at least 1, got {self.node_count}")
        if self.hpa_min_replicas < 1:
            raise ConfigurationError(
                f"hpa_min_replicas must be at least 1, got {self.hpa_min_replicas}")
        if self.hpa_max_replicas < self.hpa_min_replicas:
            raise ConfigurationError(
                f"hpa_max_replicas ({self.hpa_max_replicas}) must not be below "
                f"hpa_min_replicas ({self.hpa_min_replicas})")
        if not 1 <= self.hpa_cpu_target <= 100:
            raise ConfigurationError(
                f"hpa_cpu_target must be a percentage between 1 and 100, got {self.hpa_cpu_target}")
        if self.vpc_id and not self.subnet_ids:
            raise ConfigurationError("subnet_ids are required when vpc_id is given")
        if self.manages_network:
            try:
                network = ipaddress.IPv4Network(self.vpc_cidr)
            except ValueError as e:
                raise ConfigurationError(f"vpc_cidr is not a valid IPv4 network: {e}") from e
            if network.prefixlen > MAX_VPC_PREFIX:
                raise ConfigurationError(
                    f"vpc_cidr {self.vpc_cidr} is too small for two public subnets "
                    f"(prefix must be /{MAX_VPC_PREFIX} or shorter)")

    @property
    def common_tags(self) -> Dict[str, str]:
        """Get common tags for all AWS resources"""
        base_tags = {
            "Project": "microservices-eks",
            "Cluster": self.cluster_name,
            "ManagedBy": "pulumi",
        }
        base_tags.update(self.additional_tags)
        return base_tags

    @property
    def manages_network(self) -> bool:
        """True when the stack declares its own VPC instead of using an existing one"""
        return not self.vpc_id

    @property
    def app_url(self) -> str:
        return f"https://{self.domain}"


def get_config(pulumi_config: Optional[pulumi.Config] = None,
               aws_config: Optional[pulumi.Config] = None,
               network_lookup: Optional[Callable[[], Tuple[str, List[str]]]] = None) -> Config:
    """
    Read the stack configuration into a Config bundle

    Args:
        pulumi_config: Project config (defaults to pulumi.Config())
        aws_config: AWS provider config (defaults to pulumi.Config("aws"))
        network_lookup: Returns (vpc_id, subnet_ids) of the account default VPC;
            called only when use_default_vpc is set and no vpc_id is configured

    Returns:
        Validated Config
    """
    config = pulumi_config or pulumi.Config()
    aws_config = aws_config or pulumi.Config("aws")

    def _int(key, default):
        value = config.get_int(key)
        return default if value is None else value

    def _bool(key, default):
        value = config.get_bool(key)
        return default if value is None else value

    vpc_id = config.get("vpc_id")
    subnet_ids = config.get_object("subnet_ids") or []
    if not vpc_id and _bool("use_default_vpc", True) and network_lookup is not None:
        vpc_id, subnet_ids = network_lookup()

    return Config(
        aws_region=aws_config.get("region") or "us-east-1",
        cluster_name=config.get("cluster_name") or "eks-cluster",
        cluster_version=config.get("cluster_version") or "1.31",
        domain=config.get("domain") or "example.com",
        letsencrypt_email=config.get("letsencryptEmail") or "admin@example.com",
        cluster_mode=config.get("cluster_mode") or "node-group",
        exposure_mode=config.get("exposure_mode") or "ingress",
        instance_type=config.get("instance_type") or "t3.small",
        node_count=_int("node_count", 3),
        vpc_id=vpc_id,
        subnet_ids=subnet_ids,
        vpc_cidr=config.get("vpc_cidr") or "10.0.0.0/16",
        backend_image=config.get("backend_image") or "hashicorp/http-echo:latest",
        frontend_image=config.get("frontend_image") or "nginx:alpine",
        redis_image=config.get("redis_image") or "redis:7-alpine",
        hpa_min_replicas=_int("hpa_min_replicas", 2),
        hpa_max_replicas=_int("hpa_max_replicas", 10),
        hpa_cpu_target=_int("hpa_cpu_target", 70),
        enable_lb_controller=_bool("enable_lb_controller", True),
        additional_tags=config.get_object("tags") or {},
    )

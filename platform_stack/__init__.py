"""
Microservices EKS platform
Resource graph builder and the Pulumi declarations for each layer of the stack
"""

from .graph import Derived, Ref, ResourceGraph
from .stack import build_graph, deploy

__all__ = [
    "Derived",
    "Ref",
    "ResourceGraph",
    "build_graph",
    "deploy",
]

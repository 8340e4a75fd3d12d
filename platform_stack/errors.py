"""
Errors raised while building the resource graph
Everything here fires before Pulumi is asked to create anything
"""


class PlatformError(Exception):
    """Base class for graph-build failures"""


class ConfigurationError(PlatformError):
    """A configuration value is missing or out of range"""


class DeclarationError(PlatformError):
    """A resource declaration is malformed or cannot be materialized"""

    def __init__(self, name: str, message: str):
        super().__init__(f"{name}: {message}")
        self.name = name


class DuplicateDeclarationError(DeclarationError):
    def __init__(self, name: str):
        super().__init__(name, "logical name is already declared")


class UndeclaredPredecessorError(DeclarationError):
    def __init__(self, name: str, predecessor: str, edge_kind: str):
        super().__init__(name, f"{edge_kind} edge to undeclared resource {predecessor!r}")
        self.predecessor = predecessor
        self.edge_kind = edge_kind


class CycleError(PlatformError):
    def __init__(self, names):
        self.names = sorted(names)
        super().__init__(f"dependency cycle between: {', '.join(self.names)}")

"""
Declarative Resource Graph
Named resource declarations with typed edges, handed to Pulumi in topological order
"""

import copy
import hashlib
import heapq
import json
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from .errors import CycleError, DuplicateDeclarationError, UndeclaredPredecessorError

ORDER = "order"
DATA = "data"
PROVIDER = "provider"

_INHERIT = object()


class Ref:
    """
    Reference to a materialized attribute of another declaration

    Ref("cluster", "identities", 0, "oidcs", 0, "issuer") reads
    cluster.identities[0].oidcs[0].issuer once the cluster exists.
    An empty path refers to the resource itself.
    """

    __slots__ = ("target", "path")

    def __init__(self, target: str, *path):
        self.target = target
        self.path = tuple(path)

    def encode(self) -> Dict[str, Any]:
        return {"$ref": self.target, "path": list(self.path)}

    def __eq__(self, other):
        return isinstance(other, Ref) and (self.target, self.path) == (other.target, other.path)

    def __hash__(self):
        return hash((self.target, self.path))

    def __repr__(self):
        return f"Ref({self.target!r}{''.join(', ' + repr(p) for p in self.path)})"


class Derived:
    """
    Value computed from one or more Refs by a pure function

    fn receives the resolved ref values positionally, followed by params as
    keyword arguments. params must be JSON-serializable.
    """

    __slots__ = ("fn", "refs", "params")

    def __init__(self, fn: Callable[..., Any], refs: Sequence[Ref], **params):
        self.fn = fn
        self.refs = tuple(refs)
        self.params = params

    def evaluate(self, *values):
        return self.fn(*values, **self.params)

    def encode(self) -> Dict[str, Any]:
        return {
            "$derived": f"{self.fn.__module__}.{self.fn.__qualname__}",
            "refs": [ref.encode() for ref in self.refs],
            "params": _encode(self.params),
        }

    def __repr__(self):
        return f"Derived({self.fn.__qualname__}, {list(self.refs)!r})"


def iter_refs(value) -> Iterator[Ref]:
    """Yield every Ref nested anywhere inside an attribute value"""
    if isinstance(value, Ref):
        yield value
    elif isinstance(value, Derived):
        yield from value.refs
    elif isinstance(value, dict):
        for item in value.values():
            yield from iter_refs(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_refs(item)


def _encode(value):
    if isinstance(value, (Ref, Derived)):
        return value.encode()
    if isinstance(value, dict):
        return {str(key): _encode(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(item) for item in value]
    return value


class Declaration:
    """A named, typed description of desired infrastructure state"""

    def __init__(self, name: str, kind: str, attributes: Dict[str, Any],
                 depends_on: Tuple[str, ...] = (), provider: Optional[str] = None):
        self.name = name
        self.kind = kind
        self.attributes = attributes
        self.depends_on = tuple(depends_on)
        self.provider = provider

    def edges(self) -> List[Tuple[str, str]]:
        """(predecessor, edge kind) pairs, each predecessor listed once"""
        seen = set()
        result = []
        candidates = [(name, ORDER) for name in self.depends_on]
        candidates += [(ref.target, DATA) for ref in iter_refs(self.attributes)]
        if self.provider is not None:
            candidates.append((self.provider, PROVIDER))
        for target, kind in candidates:
            if target not in seen:
                seen.add(target)
                result.append((target, kind))
        return result

    @property
    def predecessors(self) -> List[str]:
        return [target for target, _ in self.edges()]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind,
            "attributes": _encode(self.attributes),
            "depends_on": list(self.depends_on),
            "provider": self.provider,
        }

    def __repr__(self):
        return f"Declaration({self.name!r}, {self.kind!r})"


class ResourceGraph:
    """
    Single-pass builder for the set of declarations of one provisioning run

    Every edge must point at a name declared earlier, so the graph cannot
    contain a cycle as long as it is built through declare().
    """

    def __init__(self):
        self._declarations: Dict[str, Declaration] = {}
        self._outputs: Dict[str, Tuple[Any, bool]] = {}
        self._provider_stack: List[Optional[str]] = []

    def declare(self, name: str, kind: str, attributes: Optional[Dict[str, Any]] = None,
                depends_on: Sequence[str] = (), provider=_INHERIT) -> Declaration:
        """
        Add a declaration to the graph

        Args:
            name: Stable logical name, unique within the graph
            kind: Resource type token, e.g. "aws:eks:Cluster"
            attributes: Desired-state attributes; may contain Ref / Derived values
            depends_on: Explicit ordering predecessors
            provider: Logical name of the provider declaration to apply through;
                None for the account default, omitted to inherit the binding
                of the enclosing bind_provider() block

        Returns:
            The new Declaration
        """
        if name in self._declarations:
            raise DuplicateDeclarationError(name)
        if provider is _INHERIT:
            provider = self._provider_stack[-1] if self._provider_stack else None

        declaration = Declaration(name, kind, copy.deepcopy(attributes or {}),
                                  tuple(depends_on), provider)
        for predecessor, edge_kind in declaration.edges():
            if predecessor not in self._declarations:
                raise UndeclaredPredecessorError(name, predecessor, edge_kind)

        self._declarations[name] = declaration
        return declaration

    @contextmanager
    def bind_provider(self, provider: Optional[str]):
        """Declarations made inside the block inherit this provider binding"""
        if provider is not None and provider not in self._declarations:
            raise UndeclaredPredecessorError("<provider binding>", provider, PROVIDER)
        self._provider_stack.append(provider)
        try:
            yield self
        finally:
            self._provider_stack.pop()

    def output(self, name: str, value, secret: bool = False) -> None:
        """Register a value to export after the run"""
        if name in self._outputs:
            raise DuplicateDeclarationError(f"output:{name}")
        for ref in iter_refs(value):
            if ref.target not in self._declarations:
                raise UndeclaredPredecessorError(f"output:{name}", ref.target, DATA)
        self._outputs[name] = (value, secret)

    @property
    def outputs(self) -> Dict[str, Any]:
        return {name: value for name, (value, _) in self._outputs.items()}

    def is_secret_output(self, name: str) -> bool:
        return self._outputs[name][1]

    def __contains__(self, name) -> bool:
        return name in self._declarations

    def __getitem__(self, name) -> Declaration:
        return self._declarations[name]

    def __iter__(self) -> Iterator[Declaration]:
        return iter(self._declarations.values())

    def __len__(self) -> int:
        return len(self._declarations)

    def edges(self) -> List[Tuple[str, str, str]]:
        """All (predecessor, successor, edge kind) triples in declaration order"""
        return [(predecessor, declaration.name, kind)
                for declaration in self
                for predecessor, kind in declaration.edges()]

    def topological_order(self) -> List[Declaration]:
        """Kahn's algorithm; independent declarations keep their declaration order"""
        index = {name: position for position, name in enumerate(self._declarations)}
        in_degree = {name: 0 for name in self._declarations}
        successors: Dict[str, List[str]] = {name: [] for name in self._declarations}
        for predecessor, successor, _ in self.edges():
            in_degree[successor] += 1
            successors[predecessor].append(successor)

        ready = [index[name] for name, degree in in_degree.items() if degree == 0]
        heapq.heapify(ready)
        names = list(self._declarations)
        ordered = []
        while ready:
            name = names[heapq.heappop(ready)]
            ordered.append(self._declarations[name])
            for successor in successors[name]:
                in_degree[successor] -= 1
                if in_degree[successor] == 0:
                    heapq.heappush(ready, index[successor])

        if len(ordered) != len(self._declarations):
            raise CycleError(name for name, degree in in_degree.items() if degree > 0)
        return ordered

    def to_dict(self) -> Dict[str, Any]:
        return {
            "declarations": [declaration.to_dict() for declaration in self],
            "outputs": {name: {"value": _encode(value), "secret": secret}
                        for name, (value, secret) in self._outputs.items()},
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))

    def fingerprint(self) -> str:
        """SHA-256 of the canonical JSON form; equal graphs give equal fingerprints"""
        return hashlib.sha256(self.to_json().encode("utf-8")).hexdigest()

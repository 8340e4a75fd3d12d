"""
Unit tests for the declarative resource graph
"""

import json
import unittest
import sys
import os

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from platform_stack.errors import CycleError, DuplicateDeclarationError, UndeclaredPredecessorError
from platform_stack.graph import DATA, ORDER, PROVIDER, Derived, Ref, ResourceGraph, iter_refs


def join(*parts, separator="-"):
    return separator.join(parts)


class TestDeclare(unittest.TestCase):

    def setUp(self):
        self.graph = ResourceGraph()
        self.graph.declare("vpc", "aws:ec2:Vpc", {"cidr_block": "10.0.0.0/16"})

    def test_duplicate_name_rejected(self):
        with self.assertRaises(DuplicateDeclarationError) as ctx:
            self.graph.declare("vpc", "aws:ec2:Vpc")
        self.assertEqual(ctx.exception.name, "vpc")

    def test_forward_order_edge_rejected(self):
        with self.assertRaises(UndeclaredPredecessorError) as ctx:
            self.graph.declare("cluster", "aws:eks:Cluster", depends_on=["role"])
        self.assertEqual(ctx.exception.predecessor, "role")
        self.assertEqual(ctx.exception.edge_kind, ORDER)
        self.assertNotIn("cluster", self.graph)

    def test_forward_data_edge_rejected(self):
        with self.assertRaises(UndeclaredPredecessorError) as ctx:
            self.graph.declare("subnet", "aws:ec2:Subnet", {"vpc_id": Ref("other-vpc", "id")})
        self.assertEqual(ctx.exception.edge_kind, DATA)

    def test_undeclared_provider_rejected(self):
        with self.assertRaises(UndeclaredPredecessorError) as ctx:
            self.graph.declare("ns", "kubernetes:core/v1:Namespace", provider="k8s")
        self.assertEqual(ctx.exception.edge_kind, PROVIDER)

    def test_refs_inside_derived_are_edges(self):
        self.graph.declare("igw", "aws:ec2:InternetGateway", {"vpc_id": Ref("vpc", "id")})
        declaration = self.graph.declare("tagged", "aws:ec2:Subnet", {
            "tags": {"Name": Derived(join, [Ref("vpc", "id"), Ref("igw", "id")])},
        })
        self.assertEqual(declaration.predecessors, ["vpc", "igw"])

    def test_edge_kinds_and_single_listing(self):
        self.graph.declare("k8s", "kubernetes:Provider", {"kubeconfig": "..."}, depends_on=["vpc"])
        declaration = self.graph.declare("ns", "kubernetes:core/v1:Namespace",
                                         {"metadata": {"labels": {"vpc": Ref("vpc", "id")}}},
                                         depends_on=["vpc"], provider="k8s")
        self.assertEqual(declaration.edges(), [("vpc", ORDER), ("k8s", PROVIDER)])

    def test_attributes_copied_at_declare_time(self):
        attributes = {"tags": {"Name": "a"}}
        declaration = self.graph.declare("igw", "aws:ec2:InternetGateway", attributes)
        attributes["tags"]["Name"] = "b"
        self.assertEqual(declaration.attributes["tags"]["Name"], "a")


class TestProviderBinding(unittest.TestCase):

    def test_inherited_and_explicit_bindings(self):
        graph = ResourceGraph()
        graph.declare("cluster", "aws:eks:Cluster")
        graph.declare("k8s", "kubernetes:Provider", {"kubeconfig": Ref("cluster", "endpoint")})
        with graph.bind_provider("k8s"):
            inherited = graph.declare("ns", "kubernetes:core/v1:Namespace")
            account_default = graph.declare("role", "aws:iam:Role", provider=None)
        outside = graph.declare("policy", "aws:iam:Policy")

        self.assertEqual(inherited.provider, "k8s")
        self.assertIsNone(account_default.provider)
        self.assertIsNone(outside.provider)
        self.assertIn(("k8s", "ns", PROVIDER), graph.edges())

    def test_binding_to_undeclared_provider_rejected(self):
        graph = ResourceGraph()
        with self.assertRaises(UndeclaredPredecessorError):
            with graph.bind_provider("k8s"):
                pass


class TestOrdering(unittest.TestCase):

    def test_topological_order_keeps_declaration_order_for_independent_nodes(self):
        graph = ResourceGraph()
        graph.declare("a", "aws:iam:Role")
        graph.declare("b", "aws:iam:Role")
        graph.declare("c", "aws:iam:RolePolicyAttachment", {"role": Ref("b", "name")})
        graph.declare("d", "aws:iam:RolePolicyAttachment", {"role": Ref("a", "name")})
        order = [declaration.name for declaration in graph.topological_order()]
        self.assertEqual(order, ["a", "b", "c", "d"])

    def test_every_predecessor_precedes_its_successor(self):
        graph = ResourceGraph()
        graph.declare("vpc", "aws:ec2:Vpc")
        graph.declare("subnet", "aws:ec2:Subnet", {"vpc_id": Ref("vpc", "id")})
        graph.declare("cluster", "aws:eks:Cluster", {"subnet_ids": [Ref("subnet", "id")]})
        graph.declare("nodes", "aws:eks:NodeGroup", {"cluster_name": Ref("cluster", "name")},
                      depends_on=["subnet"])
        position = {d.name: i for i, d in enumerate(graph.topological_order())}
        for predecessor, successor, _ in graph.edges():
            self.assertLess(position[predecessor], position[successor])

    def test_cycle_detected(self):
        graph = ResourceGraph()
        graph.declare("a", "aws:iam:Role")
        graph.declare("b", "aws:iam:Role", depends_on=["a"])
        # Only reachable by editing a declaration after the fact
        graph["a"].depends_on = ("b",)
        with self.assertRaises(CycleError) as ctx:
            graph.topological_order()
        self.assertEqual(ctx.exception.names, ["a", "b"])


class TestOutputsAndSerialization(unittest.TestCase):

    def _build(self, cidr="10.0.0.0/16"):
        graph = ResourceGraph()
        graph.declare("vpc", "aws:ec2:Vpc", {"cidr_block": cidr})
        graph.declare("subnet", "aws:ec2:Subnet", {
            "vpc_id": Ref("vpc", "id"),
            "tags": {"Name": Derived(join, [Ref("vpc", "id")], separator="/")},
        })
        graph.output("vpc_id", Ref("vpc", "id"))
        return graph

    def test_output_to_undeclared_resource_rejected(self):
        graph = ResourceGraph()
        with self.assertRaises(UndeclaredPredecessorError):
            graph.output("cluster_name", Ref("cluster", "name"))

    def test_duplicate_output_rejected(self):
        graph = self._build()
        with self.assertRaises(DuplicateDeclarationError):
            graph.output("vpc_id", "vpc-1")

    def test_fingerprint_is_deterministic(self):
        self.assertEqual(self._build().to_json(), self._build().to_json())
        self.assertEqual(self._build().fingerprint(), self._build().fingerprint())

    def test_fingerprint_changes_with_attributes(self):
        self.assertNotEqual(self._build().fingerprint(), self._build("10.1.0.0/16").fingerprint())

    def test_canonical_json_encodes_refs(self):
        document = json.loads(self._build().to_json())
        subnet = document["declarations"][1]
        self.assertEqual(subnet["attributes"]["vpc_id"], {"$ref": "vpc", "path": ["id"]})
        derived = subnet["attributes"]["tags"]["Name"]
        self.assertTrue(derived["$derived"].endswith(".join"))
        self.assertEqual(derived["params"], {"separator": "/"})
        self.assertEqual(document["outputs"]["vpc_id"]["secret"], False)

    def test_iter_refs_walks_nested_values(self):
        value = {"a": [Ref("x"), {"b": Derived(join, [Ref("y", "id")])}], "c": "plain"}
        self.assertEqual([ref.target for ref in iter_refs(value)], ["x", "y"])

    def test_derived_evaluates_with_params(self):
        derived = Derived(join, [Ref("a"), Ref("b")], separator=":")
        self.assertEqual(derived.evaluate("left", "right"), "left:right")


if __name__ == "__main__":
    unittest.main()

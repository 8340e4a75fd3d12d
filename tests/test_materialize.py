"""
Unit tests for turning the graph into Pulumi resources
The Pulumi SDK modules are mocked; no engine is needed
"""

import unittest
from unittest.mock import patch
import sys
import os

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config
from platform_stack.errors import DeclarationError
from platform_stack.graph import Derived, Ref, ResourceGraph
from platform_stack.materialize import materialize, resolve
from platform_stack.stack import build_graph, deploy


def join(*parts):
    return "/".join(parts)


def small_graph():
    graph = ResourceGraph()
    graph.declare("vpc", "aws:ec2:Vpc", {"cidr_block": "10.0.0.0/16"})
    graph.declare("subnet", "aws:ec2:Subnet", {"vpc_id": Ref("vpc", "id")})
    graph.declare("k8s", "kubernetes:Provider",
                  {"kubeconfig": Derived(join, [Ref("vpc", "id")])}, depends_on=["subnet"])
    with graph.bind_provider("k8s"):
        graph.declare("ns", "kubernetes:core/v1:Namespace", {"metadata": {"name": "apps"}})
    graph.output("vpc_id", Ref("vpc", "id"))
    graph.output("token", "s3cr3t", secret=True)
    return graph


class TestMaterialize(unittest.TestCase):

    def setUp(self):
        patchers = [
            patch("platform_stack.materialize.aws"),
            patch("platform_stack.materialize.k8s"),
            patch("platform_stack.materialize.pulumi"),
        ]
        self.mock_aws, self.mock_k8s, self.mock_pulumi = [p.start() for p in patchers]
        for patcher in patchers:
            self.addCleanup(patcher.stop)

    def test_resources_created_with_resolved_refs(self):
        resources = materialize(small_graph())

        vpc = self.mock_aws.ec2.Vpc.return_value
        self.mock_aws.ec2.Vpc.assert_called_once()
        self.assertEqual(self.mock_aws.ec2.Vpc.call_args.args, ("vpc",))
        self.assertEqual(self.mock_aws.ec2.Vpc.call_args.kwargs["cidr_block"], "10.0.0.0/16")
        self.assertIs(self.mock_aws.ec2.Subnet.call_args.kwargs["vpc_id"], vpc.id)
        self.assertEqual(list(resources), ["vpc", "subnet", "k8s", "ns"])

    def test_options_carry_provider_and_dependencies(self):
        materialize(small_graph())

        vpc = self.mock_aws.ec2.Vpc.return_value
        subnet = self.mock_aws.ec2.Subnet.return_value
        provider = self.mock_k8s.Provider.return_value
        calls = [c.kwargs for c in self.mock_pulumi.ResourceOptions.call_args_list]

        self.assertEqual(calls[0], {"provider": None, "depends_on": []})
        self.assertEqual(calls[1], {"provider": None, "depends_on": [vpc]})
        self.assertEqual(calls[2], {"provider": None, "depends_on": [subnet, vpc]})
        self.assertEqual(calls[3], {"provider": provider, "depends_on": []})

        namespace_opts = self.mock_k8s.core.v1.Namespace.call_args.kwargs["opts"]
        self.assertIs(namespace_opts, self.mock_pulumi.ResourceOptions.return_value)

    def test_derived_values_apply_over_outputs(self):
        materialize(small_graph())

        vpc = self.mock_aws.ec2.Vpc.return_value
        self.mock_pulumi.Output.all.assert_called_once_with(vpc.id)
        apply = self.mock_pulumi.Output.all.return_value.apply
        self.assertIs(self.mock_k8s.Provider.call_args.kwargs["kubeconfig"], apply.return_value)

        transform = apply.call_args.args[0]
        self.assertEqual(transform(["vpc-123"]), "vpc-123")

    def test_outputs_exported(self):
        materialize(small_graph())

        vpc = self.mock_aws.ec2.Vpc.return_value
        exports = dict(c.args for c in self.mock_pulumi.export.call_args_list)
        self.assertIs(exports["vpc_id"], vpc.id)
        self.mock_pulumi.Output.secret.assert_called_once_with("s3cr3t")
        self.assertIs(exports["token"], self.mock_pulumi.Output.secret.return_value)

    def test_unknown_kind_rejected(self):
        graph = ResourceGraph()
        graph.declare("bucket", "aws:s3:Bucket")
        with self.assertRaises(DeclarationError):
            materialize(graph)

    def test_nested_ref_paths_resolved(self):
        cluster = self.mock_aws.eks.Cluster.return_value
        value = resolve({"url": Ref("cluster", "identities", 0, "oidcs", 0, "issuer")},
                        {"cluster": cluster})
        self.assertIs(value["url"], cluster.identities[0].oidcs[0].issuer)

    def test_refs_inside_tuples_resolved(self):
        vpc = self.mock_aws.ec2.Vpc.return_value
        value = resolve({"ids": (Ref("vpc", "id"), "static")}, {"vpc": vpc})
        self.assertEqual(value["ids"], [vpc.id, "static"])

    def test_full_platform_materializes(self):
        graph = build_graph(Config())
        resources = materialize(graph)

        self.assertEqual(len(resources), len(graph))
        self.assertEqual(self.mock_k8s.helm.v3.Release.call_count, 3)
        self.mock_aws.eks.NodeGroup.assert_called_once()
        self.mock_k8s.networking.v1.Ingress.assert_called_once()
        exported = [c.args[0] for c in self.mock_pulumi.export.call_args_list]
        self.assertEqual(exported, ["kubeconfig", "cluster_name", "app_url", "get_load_balancer_command"])

    def test_gateway_service_is_read_not_created(self):
        graph = build_graph(Config(exposure_mode="gateway"))
        materialize(graph)

        self.mock_k8s.core.v1.Service.get.assert_called_once()
        self.assertEqual(self.mock_k8s.core.v1.Service.get.call_args.args[0], "gateway-service")
        self.mock_k8s.yaml.ConfigFile.assert_called_once()


class TestDeploy(unittest.TestCase):

    @patch("platform_stack.stack.materialize")
    @patch("platform_stack.stack.pulumi")
    def test_deploy_builds_then_materializes(self, mock_pulumi, mock_materialize):
        result = deploy(Config())

        mock_materialize.assert_called_once()
        graph = mock_materialize.call_args.args[0]
        self.assertIn("cluster", graph)
        self.assertIs(result, mock_materialize.return_value)
        mock_pulumi.log.info.assert_called_once()


if __name__ == "__main__":
    unittest.main()

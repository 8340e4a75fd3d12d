"""
Identity bindings
IAM roles trusted by exactly one Kubernetes service account, and the annotated service account itself
"""

import json

from .graph import Derived, Ref, ResourceGraph
from .trust import trust_policy

LB_CONTROLLER_NAMESPACE = "kube-system"
LB_CONTROLLER_SERVICE_ACCOUNT = "aws-load-balancer-controller"

LB_CONTROLLER_POLICY = {
    "Version": "2012-10-17",
    "Statement": [
        {
            "Effect": "Allow",
            "Action": ["iam:CreateServiceLinkedRole"],
            "Resource": "*",
            "Condition": {
                "StringEquals": {"iam:AWSServiceName": "elasticloadbalancing.amazonaws.com"}
            }
        },
        {
            "Effect": "Allow",
            "Action": [
                "ec2:Describe*",
                "ec2:GetCoipPoolUsage",
                "ec2:GetSecurityGroupsForVpc",
                "elasticloadbalancing:Describe*",
                "acm:ListCertificates",
                "acm:DescribeCertificate",
                "cognito-idp:DescribeUserPoolClient",
                "iam:ListServerCertificates",
                "iam:GetServerCertificate",
                "waf-regional:GetWebACL",
                "waf-regional:GetWebACLForResource",
                "wafv2:GetWebACL",
                "wafv2:GetWebACLForResource",
                "shield:GetSubscriptionState",
                "shield:DescribeProtection"
            ],
            "Resource": "*"
        },
        {
            "Effect": "Allow",
            "Action": [
                "ec2:AuthorizeSecurityGroupIngress",
                "ec2:RevokeSecurityGroupIngress",
                "ec2:CreateSecurityGroup",
                "ec2:DeleteSecurityGroup",
                "ec2:CreateTags",
                "ec2:DeleteTags"
            ],
            "Resource": "*"
        },
        {
            "Effect": "Allow",
            "Action": [
                "elasticloadbalancing:CreateLoadBalancer",
                "elasticloadbalancing:CreateTargetGroup",
                "elasticloadbalancing:CreateListener",
                "elasticloadbalancing:CreateRule",
                "elasticloadbalancing:DeleteLoadBalancer",
                "elasticloadbalancing:DeleteTargetGroup",
                "elasticloadbalancing:DeleteListener",
                "elasticloadbalancing:DeleteRule",
                "elasticloadbalancing:ModifyLoadBalancerAttributes",
                "elasticloadbalancing:ModifyTargetGroup",
                "elasticloadbalancing:ModifyTargetGroupAttributes",
                "elasticloadbalancing:ModifyListener",
                "elasticloadbalancing:ModifyRule",
                "elasticloadbalancing:SetIpAddressType",
                "elasticloadbalancing:SetSecurityGroups",
                "elasticloadbalancing:SetSubnets",
                "elasticloadbalancing:RegisterTargets",
                "elasticloadbalancing:DeregisterTargets",
                "elasticloadbalancing:AddTags",
                "elasticloadbalancing:RemoveTags",
                "elasticloadbalancing:AddListenerCertificates",
                "elasticloadbalancing:RemoveListenerCertificates",
                "elasticloadbalancing:SetWebAcl"
            ],
            "Resource": "*"
        }
    ]
}


def declare_service_account_role(graph: ResourceGraph, name: str, cluster,
                                 namespace: str, service_account: str,
                                 policy_document: dict, tags=None):
    """
    Declare an IAM role assumable only by one service account, plus the service account

    Args:
        graph: Graph to declare into
        name: Logical name prefix
        cluster: Result of declare_cluster()
        namespace: Service account namespace
        service_account: Service account name
        policy_document: Permissions granted to the role
        tags: AWS tags

    Returns:
        Dict with the logical names of the role and service account
    """
    tags = tags or {}
    role = f"{name}-role"
    policy = f"{name}-policy"

    graph.declare(policy, "aws:iam:Policy", {
        "policy": json.dumps(policy_document),
        "tags": tags,
    })

    graph.declare(role, "aws:iam:Role", {
        "assume_role_policy": Derived(
            trust_policy,
            [cluster["issuer"], Ref(cluster["oidc_provider"], "arn")],
            namespace=namespace,
            service_account=service_account),
        "tags": tags,
    })

    graph.declare(f"{name}-policy-attach", "aws:iam:RolePolicyAttachment", {
        "role": Ref(role, "name"),
        "policy_arn": Ref(policy, "arn"),
    })

    sa = f"{name}-sa"
    graph.declare(sa, "kubernetes:core/v1:ServiceAccount", {
        "metadata": {
            "name": service_account,
            "namespace": namespace,
            "annotations": {
                "eks.amazonaws.com/role-arn": Ref(role, "arn"),
            },
        },
    }, depends_on=[f"{name}-policy-attach"], provider=cluster["provider"])

    return {
        "role": role,
        "service_account": sa,
        "service_account_name": service_account,
    }


def declare_lb_controller_identity(graph: ResourceGraph, config, cluster):
    return declare_service_account_role(
        graph, "lb-controller", cluster,
        namespace=LB_CONTROLLER_NAMESPACE,
        service_account=LB_CONTROLLER_SERVICE_ACCOUNT,
        policy_document=LB_CONTROLLER_POLICY,
        tags=config.common_tags)

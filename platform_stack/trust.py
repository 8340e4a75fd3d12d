"""
Identity trust wiring (IRSA)
Trust policies that let one Kubernetes service account assume one IAM role
"""

import json

_SCHEMES = ("https://", "http://")


def federation_host(issuer_url: str) -> str:
    """
    Strip the scheme from an OIDC issuer URL the way IAM condition keys expect it

    https://oidc.eks.us-east-1.amazonaws.com/id/ABC -> oidc.eks.us-east-1.amazonaws.com/id/ABC
    """
    if not issuer_url:
        raise ValueError("issuer URL is empty")
    for scheme in _SCHEMES:
        if issuer_url.startswith(scheme):
            host = issuer_url[len(scheme):]
            if not host:
                raise ValueError(f"issuer URL has no host: {issuer_url!r}")
            return host
    raise ValueError(f"issuer URL must start with https://, got {issuer_url!r}")


def service_account_subject(namespace: str, service_account: str) -> str:
    return f"system:serviceaccount:{namespace}:{service_account}"


def trust_policy(issuer_url: str, provider_arn: str, namespace: str,
                 service_account: str, audience: str = "sts.amazonaws.com") -> str:
    """
    Build the assume-role policy document for a service account

    Args:
        issuer_url: Cluster OIDC issuer as reported by EKS
        provider_arn: ARN of the IAM OIDC provider registered for that issuer
        namespace: Service account namespace
        service_account: Service account name
        audience: Token audience

    Returns:
        JSON policy document
    """
    host = federation_host(issuer_url)
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [{
            "Effect": "Allow",
            "Principal": {
                "Federated": provider_arn
            },
            "Action": "sts:AssumeRoleWithWebIdentity",
            "Condition": {
                "StringEquals": {
                    f"{host}:sub": service_account_subject(namespace, service_account),
                    f"{host}:aud": audience
                }
            }
        }]
    })

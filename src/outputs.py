"""
Stack Outputs
Values downstream automation needs to attach job-runner networking after provisioning
"""
from typing import Any, Dict

import pulumi


def collect_outputs(graph: Dict[str, Any]) -> Dict[str, Any]:
    """Always four entries; the load balancer name is None without an edge router"""
    network = graph["network"]
    edge_router = graph.get("edge_router")

    return {
        "LoadBalancerDNSName": edge_router["dns_name"] if edge_router else None,
        "KanikoSecurityGroupId": network["kaniko_security_group_id"],
        "PublicSubnetId": network["public_subnet_ids"][0],
        "PrivateSubnetId": network["private_subnet_ids"][0],
    }


def export_outputs(graph: Dict[str, Any]) -> Dict[str, Any]:
    outputs = collect_outputs(graph)
    for name, value in outputs.items():
        pulumi.export(name, value)
    return outputs

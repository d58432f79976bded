"""
Identity & Policy
One ECS-tasks role per workload and trust boundary, with narrowly scoped inline statements
"""
import json
from typing import Any, Dict, List, Sequence

import pulumi
import pulumi_aws as aws

from config import Settings
from src.errors import PermissionScopeError

ECS_TASKS_PRINCIPAL = "ecs-tasks.amazonaws.com"


def assume_role_policy(service: str = ECS_TASKS_PRINCIPAL) -> str:
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [{
            "Action": "sts:AssumeRole",
            "Effect": "Allow",
            "Principal": {"Service": service}
        }]
    })


def policy_document(actions: Sequence[str], resources: Sequence[Any]) -> Dict[str, Any]:
    """
    Build a single-statement allow policy

    Args:
        actions: IAM actions, e.g. ["ecr:PutImage"]
        resources: resource ARNs the actions are limited to

    Raises:
        PermissionScopeError: no actions, no resources, or an undefined resource
    """
    if not actions:
        raise PermissionScopeError("Policy statement has no actions")
    if not resources:
        raise PermissionScopeError(f"Policy statement for {list(actions)} has no resource scope")
    for resource in resources:
        if resource is None or (isinstance(resource, str) and not resource.strip()):
            raise PermissionScopeError(f"Policy statement for {list(actions)} references an undefined resource")

    return {
        "Version": "2012-10-17",
        "Statement": [{
            "Effect": "Allow",
            "Action": sorted(actions),
            "Resource": list(resources) if len(resources) > 1 else resources[0],
        }]
    }


def create_identity(name: str, settings: Settings) -> Dict[str, Any]:
    """
    Create an execution identity trusted only by ECS tasks

    Args:
        name: Role name, also the logical resource name
        settings: Run settings (for tags)

    Returns:
        Dict with role resource, outputs and the list of granted statements
    """
    role = aws.iam.Role(name,
        name=name,
        assume_role_policy=assume_role_policy(),
        tags={**settings.common_tags, "Name": name})

    return {
        "name": name,
        "role": role,
        "role_arn": role.arn,
        "role_name": role.name,
        "grants": [],
    }


def grant(identity: Dict[str, Any], name: str, actions: List[str],
          resources: List[Any]) -> aws.iam.RolePolicy:
    """
    Append an inline permission statement to an identity

    Resources may be plain ARNs or Outputs; plain values are checked right
    away, Output values when they resolve.
    """
    # Fail at declaration time for anything already known
    policy_document(actions, resources)

    policy = pulumi.Output.all(*resources).apply(
        lambda resolved: json.dumps(policy_document(actions, resolved)))

    role_policy = aws.iam.RolePolicy(f"{identity['name']}-{name}",
        role=identity["role"].id,
        policy=policy)

    identity["grants"].append({"name": name, "actions": sorted(actions), "resources": list(resources)})
    return role_policy


def granted_actions(identity: Dict[str, Any]) -> List[str]:
    """Every action granted to an identity, deduplicated and sorted"""
    return sorted({action for g in identity["grants"] for action in g["actions"]})

"""
Kaniko Job Runner
Task definition Jenkins launches to build an image from a git repository and push it to ECR
"""
import json
from typing import Any, Dict, List

import pulumi
import pulumi_aws as aws

from config import (BUILD_FILE_NAME, CONTEXT_SUB_PATH, KANIKO_CPU, KANIKO_FAMILY, KANIKO_MEMORY_MIB,
                    PUBLISH_TAG, SOURCE_REPO_URL, Settings)
from src.cluster import create_log_group
from src.iam import grant

# Pull identity (execution role): fetch the builder image
PULL_ACTIONS = [
    "ecr:BatchCheckLayerAvailability",
    "ecr:GetDownloadUrlForLayer",
    "ecr:BatchGetImage",
]

# Push identity (task role): write the produced image
PUSH_ACTIONS = [
    "ecr:BatchCheckLayerAvailability",
    "ecr:BatchGetImage",
    "ecr:InitiateLayerUpload",
    "ecr:UploadLayerPart",
    "ecr:CompleteLayerUpload",
    "ecr:PutImage",
]

# Account-level action, cannot be scoped to a repository
AUTH_ACTIONS = ["ecr:GetAuthorizationToken"]

LOG_ACTIONS = ["logs:CreateLogStream", "logs:PutLogEvents"]


def kaniko_command(destination: str) -> List[str]:
    """Fixed executor arguments; only the destination repository comes from the stack"""
    return [
        "--context", SOURCE_REPO_URL,
        "--context-sub-path", CONTEXT_SUB_PATH,
        "--dockerfile", BUILD_FILE_NAME,
        "--destination", destination,
        "--force",
    ]


def kaniko_container_definitions(image: str, destination: str, log_group_name: str,
                                 region: str) -> List[Dict[str, Any]]:
    return [{
        "name": "kaniko",
        "image": image,
        "essential": True,
        "command": kaniko_command(destination),
        "logConfiguration": {
            "logDriver": "awslogs",
            "options": {
                "awslogs-group": log_group_name,
                "awslogs-region": region,
                "awslogs-stream-prefix": "kaniko",
            },
        },
    }]


def create_kaniko_job(identities: Dict[str, Dict[str, Any]], registries: Dict[str, Dict[str, Any]],
                      published: Dict[str, Any], settings: Settings) -> Dict[str, Any]:
    """
    Create the Kaniko task definition

    Args:
        identities: Roles by workload, see src.stack.create_identities
        registries: Builder and demo repositories
        published: Result of publish_image; its image_uri is the container image
        settings: Run settings

    Returns:
        Dict with task definition and the destination it pushes to
    """
    task_identity = identities["kaniko_task"]
    execution_identity = identities["kaniko_execution"]
    builder = registries["builder"]
    demo = registries["demo"]

    log_group = create_log_group(KANIKO_FAMILY, settings)

    grant(execution_identity, "ecr-auth", actions=AUTH_ACTIONS, resources=["*"])
    grant(execution_identity, "pull-builder-image", actions=PULL_ACTIONS, resources=[builder["repository_arn"]])
    grant(execution_identity, "write-logs",
        actions=LOG_ACTIONS,
        resources=[pulumi.Output.concat(log_group.arn, ":*")])
    grant(task_identity, "ecr-auth", actions=AUTH_ACTIONS, resources=["*"])
    grant(task_identity, "push-demo-image", actions=PUSH_ACTIONS, resources=[demo["repository_arn"]])

    destination = pulumi.Output.concat(demo["repository_url"], f":{PUBLISH_TAG}")

    task_definition = aws.ecs.TaskDefinition("kaniko-task-definition",
        family=KANIKO_FAMILY,
        cpu=str(KANIKO_CPU),
        memory=str(KANIKO_MEMORY_MIB),
        network_mode="awsvpc",
        requires_compatibilities=["FARGATE"],
        task_role_arn=task_identity["role_arn"],
        execution_role_arn=execution_identity["role_arn"],
        container_definitions=pulumi.Output.all(published["image_uri"], destination, log_group.name).apply(
            lambda args: json.dumps(kaniko_container_definitions(args[0], args[1], args[2], settings.aws_region))),
        tags=settings.common_tags)

    pulumi.log.info(f"Kaniko job: {SOURCE_REPO_URL} ({CONTEXT_SUB_PATH}/{BUILD_FILE_NAME}) -> {demo['name']}")

    return {
        "task_definition": task_definition,
        "task_definition_arn": task_definition.arn,
        "family": KANIKO_FAMILY,
        "image": published["image_uri"],
        "destination": destination,
        "log_group": log_group,
    }

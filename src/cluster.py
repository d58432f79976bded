"""
ECS Cluster Core
Fargate cluster shared by the Jenkins service and Kaniko tasks, plus log groups
"""
from typing import Any, Dict

import pulumi
import pulumi_aws as aws

from config import Settings


def create_log_group(name: str, settings: Settings) -> aws.cloudwatch.LogGroup:
    """CloudWatch log group used as the awslogs sink of one workload"""
    return aws.cloudwatch.LogGroup(f"{name}-logs",
        name=f"/ecs/{name}",
        retention_in_days=settings.log_retention_days,
        tags={**settings.common_tags, "Name": f"{name}-logs"})


def create_cluster(network: Dict[str, Any], settings: Settings) -> Dict[str, Any]:
    """Create the ECS cluster inside the network"""
    cluster = aws.ecs.Cluster("jenkins-cluster",
        name="jenkins-cluster",
        settings=[aws.ecs.ClusterSettingArgs(name="containerInsights", value="enabled")],
        tags={**settings.common_tags, "Name": "jenkins-cluster"},
        opts=pulumi.ResourceOptions(depends_on=[network["vpc"]]))

    return {
        "cluster": cluster,
        "cluster_arn": cluster.arn,
        "cluster_name": cluster.name,
    }

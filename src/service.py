"""
Jenkins Orchestrator Service
Fargate task definition with the EFS-backed Jenkins home, wrapped in a single-instance service
"""
import json
from typing import Any, Dict, List, Optional

import pulumi
import pulumi_aws as aws

from config import (ACCESS_POINT_GID, ACCESS_POINT_PATH, ACCESS_POINT_PERMISSIONS, ACCESS_POINT_UID,
                    JENKINS_CPU, JENKINS_DESIRED_COUNT, JENKINS_FAMILY, JENKINS_HEALTH_CHECK_GRACE_SECONDS,
                    JENKINS_HOME_PATH, JENKINS_HOME_VOLUME, JENKINS_MAX_HEALTHY_PERCENT, JENKINS_MEMORY_MIB,
                    JENKINS_MIN_HEALTHY_PERCENT, JENKINS_PORT, KANIKO_FAMILY, NFS_PORT, PROJECT_NAME, Settings)
from src.cluster import create_log_group
from src.errors import ConfigurationError
from src.iam import grant
from src.storage import create_access_point


def jenkins_mount_points() -> List[Dict[str, Any]]:
    return [{
        "sourceVolume": JENKINS_HOME_VOLUME,
        "containerPath": JENKINS_HOME_PATH,
        "readOnly": False,
    }]


def check_mount_points(mount_points: List[Dict[str, Any]], volume_names: List[str]) -> None:
    """Every mount point must reference a volume declared on the same task definition"""
    for mount in mount_points:
        if mount["sourceVolume"] not in volume_names:
            raise ConfigurationError(
                f"Mount point {mount['containerPath']} references undeclared volume '{mount['sourceVolume']}'")


def check_deployment_tolerance(desired_count: int, min_healthy_percent: int, max_percent: int) -> None:
    """
    A rolling replacement needs room either above (max > 100) or below (min < 100)

    With max capped at 100 the old task has to stop first, so min must allow zero.
    """
    if desired_count < 1:
        raise ConfigurationError("Jenkins desired count must be at least 1")
    if min_healthy_percent > max_percent:
        raise ConfigurationError(
            f"Minimum healthy percent {min_healthy_percent} exceeds maximum percent {max_percent}")
    if max_percent <= 100 and min_healthy_percent >= 100:
        raise ConfigurationError(
            "Deployment cannot replace tasks: maximum percent is 100 and minimum healthy percent is 100")


def jenkins_container_definitions(image: str, log_group_name: str, region: str) -> List[Dict[str, Any]]:
    return [{
        "name": "jenkins",
        "image": image,
        "essential": True,
        "portMappings": [{"containerPort": JENKINS_PORT, "protocol": "tcp"}],
        "mountPoints": jenkins_mount_points(),
        "logConfiguration": {
            "logDriver": "awslogs",
            "options": {
                "awslogs-group": log_group_name,
                "awslogs-region": region,
                "awslogs-stream-prefix": "jenkins",
            },
        },
    }]


def create_jenkins_service(network: Dict[str, Any], cluster: Dict[str, Any], storage: Dict[str, Any],
                           identities: Dict[str, Dict[str, Any]], edge_router: Optional[Dict[str, Any]],
                           settings: Settings) -> Dict[str, Any]:
    """
    Create the Jenkins task definition and service

    Args:
        network: Result of create_network
        cluster: Result of create_cluster
        storage: Result of create_file_system
        identities: Roles by workload, see src.stack.create_identities
        edge_router: Result of create_edge_router, None when disabled
        settings: Run settings

    Returns:
        Dict with task definition, service and security group
    """
    tags = settings.common_tags
    current = aws.get_caller_identity()
    partition = aws.get_partition().partition
    task_identity = identities["jenkins_task"]
    execution_identity = identities["jenkins_execution"]
    kaniko_task = identities["kaniko_task"]
    kaniko_execution = identities["kaniko_execution"]

    check_deployment_tolerance(JENKINS_DESIRED_COUNT, JENKINS_MIN_HEALTHY_PERCENT, JENKINS_MAX_HEALTHY_PERCENT)

    access_point = create_access_point(storage, "jenkins-access-point",
        path=ACCESS_POINT_PATH,
        uid=ACCESS_POINT_UID,
        gid=ACCESS_POINT_GID,
        acl_owner_uid=ACCESS_POINT_UID,
        acl_owner_gid=ACCESS_POINT_GID,
        permissions=ACCESS_POINT_PERMISSIONS)

    log_group = create_log_group(JENKINS_FAMILY, settings)

    # Jenkins launches Kaniko tasks: scoped to the kaniko family and its two roles
    grant(task_identity, "run-kaniko-task",
        actions=["ecs:RunTask"],
        resources=[f"arn:{partition}:ecs:{settings.aws_region}:{current.account_id}:task-definition/{KANIKO_FAMILY}:*"])
    grant(task_identity, "pass-kaniko-roles",
        actions=["iam:PassRole"],
        resources=[kaniko_task["role_arn"], kaniko_execution["role_arn"]])
    grant(task_identity, "mount-jenkins-home",
        actions=["elasticfilesystem:ClientMount", "elasticfilesystem:ClientWrite"],
        resources=[storage["file_system_arn"]])
    grant(execution_identity, "write-logs",
        actions=["logs:CreateLogStream", "logs:PutLogEvents"],
        resources=[pulumi.Output.concat(log_group.arn, ":*")])

    volumes = [aws.ecs.TaskDefinitionVolumeArgs(
        name=JENKINS_HOME_VOLUME,
        efs_volume_configuration=aws.ecs.TaskDefinitionVolumeEfsVolumeConfigurationArgs(
            file_system_id=storage["file_system_id"],
            transit_encryption="ENABLED",
            authorization_config=aws.ecs.TaskDefinitionVolumeEfsVolumeConfigurationAuthorizationConfigArgs(
                access_point_id=access_point["access_point_id"],
                iam="ENABLED")))]
    check_mount_points(jenkins_mount_points(), [JENKINS_HOME_VOLUME])

    task_definition = aws.ecs.TaskDefinition("jenkins-task-definition",
        family=JENKINS_FAMILY,
        cpu=str(JENKINS_CPU),
        memory=str(JENKINS_MEMORY_MIB),
        network_mode="awsvpc",
        requires_compatibilities=["FARGATE"],
        task_role_arn=task_identity["role_arn"],
        execution_role_arn=execution_identity["role_arn"],
        volumes=volumes,
        container_definitions=log_group.name.apply(
            lambda name: json.dumps(jenkins_container_definitions(settings.jenkins_image, name, settings.aws_region))),
        tags=tags)

    service_sg = aws.ec2.SecurityGroup("jenkins-service-sg",
        name=f"{PROJECT_NAME}-jenkins-sg",
        description="Jenkins service tasks",
        vpc_id=network["vpc_id"],
        egress=[aws.ec2.SecurityGroupEgressArgs(
            protocol="-1",
            from_port=0,
            to_port=0,
            cidr_blocks=["0.0.0.0/0"])],
        tags={**tags, "Name": f"{PROJECT_NAME}-jenkins-sg"})

    efs_rule = aws.ec2.SecurityGroupRule("jenkins-to-efs",
        type="ingress",
        protocol="tcp",
        from_port=NFS_PORT,
        to_port=NFS_PORT,
        source_security_group_id=service_sg.id,
        security_group_id=storage["security_group_id"])

    depends_on = [efs_rule, *storage["mount_targets"]]
    load_balancers = None
    if edge_router is not None:
        aws.ec2.SecurityGroupRule("alb-to-jenkins",
            type="ingress",
            protocol="tcp",
            from_port=JENKINS_PORT,
            to_port=JENKINS_PORT,
            source_security_group_id=edge_router["security_group_id"],
            security_group_id=service_sg.id)
        load_balancers = [aws.ecs.ServiceLoadBalancerArgs(
            target_group_arn=edge_router["target_group_arn"],
            container_name="jenkins",
            container_port=JENKINS_PORT)]
        depends_on.append(edge_router["listener"])

    service = aws.ecs.Service("jenkins-service",
        name="jenkins",
        cluster=cluster["cluster_arn"],
        task_definition=task_definition.arn,
        desired_count=JENKINS_DESIRED_COUNT,
        launch_type="FARGATE",
        platform_version="LATEST",
        deployment_maximum_percent=JENKINS_MAX_HEALTHY_PERCENT,
        deployment_minimum_healthy_percent=JENKINS_MIN_HEALTHY_PERCENT,
        health_check_grace_period_seconds=JENKINS_HEALTH_CHECK_GRACE_SECONDS,
        network_configuration=aws.ecs.ServiceNetworkConfigurationArgs(
            subnets=network["private_subnet_ids"],
            security_groups=[service_sg.id],
            assign_public_ip=False),
        load_balancers=load_balancers,
        tags=tags,
        opts=pulumi.ResourceOptions(depends_on=depends_on))

    pulumi.log.info(
        f"Jenkins service: {JENKINS_CPU} cpu / {JENKINS_MEMORY_MIB} MiB, desired {JENKINS_DESIRED_COUNT}, "
        f"healthy {JENKINS_MIN_HEALTHY_PERCENT}-{JENKINS_MAX_HEALTHY_PERCENT}%")

    return {
        "task_definition": task_definition,
        "task_definition_arn": task_definition.arn,
        "service": service,
        "service_name": service.name,
        "security_group": service_sg,
        "security_group_id": service_sg.id,
        "access_point": access_point,
        "log_group": log_group,
        "efs_rule": efs_rule,
    }

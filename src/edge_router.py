"""
Edge Router
Public HTTPS load balancer in front of Jenkins, only when a certificate is configured
"""
from typing import Any, Dict, Optional

import pulumi
import pulumi_aws as aws

from config import (DEREGISTRATION_DELAY_SECONDS, HTTPS_PORT, JENKINS_HEALTH_CHECK_PATH,
                    JENKINS_PORT, PROJECT_NAME, EdgeRouterConfig, EdgeRouterEnabled, Settings)


def create_edge_router(network: Dict[str, Any], edge_config: EdgeRouterConfig,
                       settings: Settings) -> Optional[Dict[str, Any]]:
    """
    Create the load balancer, TLS listener and Jenkins target group

    Returns None when the router is disabled. The target group is bound to
    the Jenkins service by the service itself (ECS registers its tasks).
    """
    if not isinstance(edge_config, EdgeRouterEnabled):
        pulumi.log.info("Edge router disabled: no certificateArn configured")
        return None

    tags = settings.common_tags

    alb_sg = aws.ec2.SecurityGroup("alb-sg",
        name=f"{PROJECT_NAME}-alb-sg",
        description="Public HTTPS to the Jenkins load balancer",
        vpc_id=network["vpc_id"],
        ingress=[aws.ec2.SecurityGroupIngressArgs(
            protocol="tcp",
            from_port=HTTPS_PORT,
            to_port=HTTPS_PORT,
            cidr_blocks=["0.0.0.0/0"])],
        egress=[aws.ec2.SecurityGroupEgressArgs(
            protocol="-1",
            from_port=0,
            to_port=0,
            cidr_blocks=["0.0.0.0/0"])],
        tags={**tags, "Name": f"{PROJECT_NAME}-alb-sg"})

    load_balancer = aws.lb.LoadBalancer("jenkins-alb",
        internal=False,
        load_balancer_type="application",
        subnets=network["public_subnet_ids"],
        security_groups=[alb_sg.id],
        tags={**tags, "Name": f"{PROJECT_NAME}-alb"})

    target_group = aws.lb.TargetGroup("jenkins-target",
        port=JENKINS_PORT,
        protocol="HTTP",
        target_type="ip",
        vpc_id=network["vpc_id"],
        deregistration_delay=DEREGISTRATION_DELAY_SECONDS,
        health_check=aws.lb.TargetGroupHealthCheckArgs(
            path=JENKINS_HEALTH_CHECK_PATH,
            protocol="HTTP",
            matcher="200"),
        tags={**tags, "Name": f"{PROJECT_NAME}-jenkins-tg"})

    listener = aws.lb.Listener("jenkins-https-listener",
        load_balancer_arn=load_balancer.arn,
        port=HTTPS_PORT,
        protocol="HTTPS",
        ssl_policy="ELBSecurityPolicy-TLS13-1-2-2021-06",
        certificate_arn=edge_config.certificate_arn,
        default_actions=[aws.lb.ListenerDefaultActionArgs(
            type="forward",
            target_group_arn=target_group.arn)],
        tags=tags)

    pulumi.log.info(f"Edge router enabled: HTTPS {HTTPS_PORT} -> Jenkins {JENKINS_PORT}")

    return {
        "load_balancer": load_balancer,
        "dns_name": load_balancer.dns_name,
        "zone_id": load_balancer.zone_id,
        "security_group": alb_sg,
        "security_group_id": alb_sg.id,
        "target_group": target_group,
        "target_group_arn": target_group.arn,
        "listener": listener,
        "listener_port": HTTPS_PORT,
        "certificate_arn": edge_config.certificate_arn,
    }

"""
Configuration management for the Jenkins + Kaniko deployment
Fixed topology constants, optional stack flags resolved once into plain values
"""

import ipaddress
import os
import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

import pulumi

from src.errors import ConfigurationError

PROJECT_NAME = "jenkins-kaniko"

# Jenkins orchestrator
JENKINS_FAMILY = "jenkins"
JENKINS_CPU = 512
JENKINS_MEMORY_MIB = 1024
JENKINS_PORT = 8080
JENKINS_HOME_VOLUME = "jenkins-home"
JENKINS_HOME_PATH = "/var/jenkins_home"
JENKINS_HEALTH_CHECK_PATH = "/login"
JENKINS_RECORD_NAME = "jenkins"
JENKINS_DESIRED_COUNT = 1
JENKINS_MAX_HEALTHY_PERCENT = 100
JENKINS_MIN_HEALTHY_PERCENT = 0
JENKINS_HEALTH_CHECK_GRACE_SECONDS = 5 * 60

# EFS access point owned by the jenkins user inside the image (uid/gid 1000)
ACCESS_POINT_PATH = "/jenkins-home"
ACCESS_POINT_UID = 1000
ACCESS_POINT_GID = 1000
ACCESS_POINT_PERMISSIONS = "755"
NFS_PORT = 2049

# Edge router
HTTPS_PORT = 443
DEREGISTRATION_DELAY_SECONDS = 10
DNS_TTL_SECONDS = 60

# Kaniko job
KANIKO_FAMILY = "kaniko-builder"
KANIKO_CPU = 512
KANIKO_MEMORY_MIB = 1024
BUILDER_REPOSITORY = "kaniko-builder"
DEMO_REPOSITORY = "kaniko-demo"
PUBLISH_TAG = "latest"
SOURCE_REPO_URL = "git://github.com/ollypom/mysfits.git"
CONTEXT_SUB_PATH = "./api"
BUILD_FILE_NAME = "Dockerfile.v3"
KANIKO_SECURITY_GROUP = "kaniko-security-group"

BUILDER_CONTEXT_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "kaniko-builder")

_HOSTNAME_LABEL = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")


@dataclass(frozen=True)
class EdgeRouterDisabled:
    """No certificate configured; no public endpoint"""


@dataclass(frozen=True)
class EdgeRouterEnabled:
    certificate_arn: str


@dataclass(frozen=True)
class DnsDisabled:
    """No hosted zone configured, or no edge router to point at"""


@dataclass(frozen=True)
class DnsEnabled:
    hosted_zone_name: str

    @property
    def record_name(self) -> str:
        return f"{JENKINS_RECORD_NAME}.{self.hosted_zone_name}"


EdgeRouterConfig = Union[EdgeRouterDisabled, EdgeRouterEnabled]
DnsConfig = Union[DnsDisabled, DnsEnabled]


@dataclass(frozen=True)
class Settings:
    """Immutable run configuration handed to every component"""

    aws_region: str
    vpc_cidr: str = "10.0.0.0/16"
    availability_zone_count: int = 2
    jenkins_image: str = "tkgregory/jenkins-with-aws:latest"
    log_retention_days: int = 7
    edge_router: EdgeRouterConfig = EdgeRouterDisabled()
    dns: DnsConfig = DnsDisabled()
    builder_context_dir: str = BUILDER_CONTEXT_DIR
    additional_tags: Dict[str, str] = field(default_factory=dict)

    @property
    def common_tags(self) -> Dict[str, str]:
        """Get common tags for all resources"""
        base_tags = {
            "Project": PROJECT_NAME,
            "ManagedBy": "pulumi",
            "Environment": "development",
        }
        base_tags.update(self.additional_tags)
        return base_tags


def validate_certificate_arn(value: str) -> str:
    """
    Check that a certificate identifier is shaped like an ACM ARN

    arn:<partition>:acm:<region>:<account>:certificate/<id>
    """
    value = value.strip()
    parts = value.split(":", 5)
    if len(parts) != 6 or parts[0] != "arn" or not parts[1].startswith("aws") or parts[2] != "acm" or not parts[5]:
        raise ConfigurationError(f"certificateArn must be an ACM certificate ARN, got '{value}'")
    return value


def validate_hosted_zone_name(value: str) -> str:
    """Normalize a hosted zone name (no trailing dot, lower case) and check its labels"""
    name = value.strip().rstrip(".").lower()
    labels = name.split(".")
    if len(labels) < 2 or not all(_HOSTNAME_LABEL.match(label) for label in labels):
        raise ConfigurationError(f"hostedZoneName must be a DNS name, got '{value}'")
    return name


def resolve_settings(aws_region: str,
                     certificate_arn: Optional[str] = None,
                     hosted_zone_name: Optional[str] = None,
                     vpc_cidr: Optional[str] = None,
                     availability_zone_count: Optional[int] = None,
                     jenkins_image: Optional[str] = None,
                     log_retention_days: Optional[int] = None,
                     builder_context_dir: Optional[str] = None,
                     tags: Optional[Dict[str, str]] = None) -> Settings:
    """
    Turn raw, optional flags into Settings

    The hosted zone only takes effect together with a certificate; the
    conditional subtrees are decided here and nowhere else.

    Raises:
        ConfigurationError: a flag is present but malformed
    """
    edge_router: EdgeRouterConfig = EdgeRouterDisabled()
    dns: DnsConfig = DnsDisabled()

    if certificate_arn:
        edge_router = EdgeRouterEnabled(validate_certificate_arn(certificate_arn))

    if hosted_zone_name:
        zone = validate_hosted_zone_name(hosted_zone_name)
        if isinstance(edge_router, EdgeRouterEnabled):
            dns = DnsEnabled(zone)
        else:
            pulumi.log.warn(f"hostedZoneName '{zone}' ignored: it requires certificateArn")

    cidr = vpc_cidr or "10.0.0.0/16"
    try:
        network = ipaddress.ip_network(cidr)
    except ValueError as e:
        raise ConfigurationError(f"vpcCidr '{cidr}' is not a valid address block: {e}") from e
    if network.version != 4 or not 16 <= network.prefixlen <= 24:
        raise ConfigurationError(f"vpcCidr '{cidr}' must be an IPv4 block between /16 and /24")

    az_count = availability_zone_count or 2
    if az_count < 1:
        raise ConfigurationError("availabilityZoneCount must be at least 1")

    retention = log_retention_days or 7
    if retention < 1:
        raise ConfigurationError("logRetentionDays must be at least 1")

    return Settings(
        aws_region=aws_region,
        vpc_cidr=str(network),
        availability_zone_count=az_count,
        jenkins_image=jenkins_image or "tkgregory/jenkins-with-aws:latest",
        log_retention_days=retention,
        edge_router=edge_router,
        dns=dns,
        builder_context_dir=builder_context_dir or BUILDER_CONTEXT_DIR,
        additional_tags=dict(tags or {}),
    )


def get_config() -> Settings:
    """Read the stack configuration and resolve it into Settings"""
    config = pulumi.Config()
    aws_config = pulumi.Config("aws")

    return resolve_settings(
        aws_region=aws_config.get("region") or "eu-west-1",
        certificate_arn=config.get("certificateArn"),
        hosted_zone_name=config.get("hostedZoneName"),
        vpc_cidr=config.get("vpcCidr"),
        availability_zone_count=config.get_int("availabilityZoneCount"),
        jenkins_image=config.get("jenkinsImage"),
        log_retention_days=config.get_int("logRetentionDays"),
        tags=config.get_object("tags"),
    )

"""
Shared mocks for the Pulumi program tests
Patches the aws / docker / pulumi names inside every module with one mock each,
so calls made by different components can be inspected together
"""

import os
import sys
import unittest
from unittest.mock import MagicMock, Mock, patch

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import resolve_settings  # noqa: E402

AWS_MODULES = [
    "src.network", "src.iam", "src.cluster", "src.storage", "src.edge_router",
    "src.dns", "src.service", "src.registry", "src.image", "src.job_runner",
]
PULUMI_MODULES = [
    "config", "src.network", "src.iam", "src.cluster", "src.storage", "src.edge_router",
    "src.dns", "src.service", "src.image", "src.job_runner", "src.outputs", "src.stack",
]
DOCKER_MODULES = ["src.image"]

CERTIFICATE_ARN = "arn:aws:acm:us-east-1:123456789012:certificate/abc-123"
ACCOUNT_ID = "123456789012"
REGION = "us-east-1"

# Resource types whose instances tests need to tell apart
NAMED_AWS_RESOURCES = [
    ("ec2", "Vpc"), ("ec2", "Subnet"), ("ec2", "SecurityGroup"), ("ec2", "SecurityGroupRule"),
    ("iam", "Role"), ("iam", "RolePolicy"), ("ecr", "Repository"), ("lb", "LoadBalancer"),
    ("lb", "TargetGroup"), ("lb", "Listener"), ("ecs", "TaskDefinition"), ("ecs", "Service"),
    ("ecs", "Cluster"), ("cloudwatch", "LogGroup"), ("efs", "FileSystem"), ("efs", "AccessPoint"),
    ("efs", "MountTarget"), ("route53", "Record"),
]
NAMED_DOCKER_RESOURCES = ["Image", "Tag", "RegistryImage", "Provider"]


def _named_resource(kind):
    def factory(resource_name, *args, **kwargs):
        resource = MagicMock(name=f"{kind}:{resource_name}")
        resource.resource_name = resource_name
        return resource
    return factory


def make_settings(**kwargs):
    kwargs.setdefault("aws_region", REGION)
    with patch("config.pulumi"):
        return resolve_settings(**kwargs)


def calls_by_name(constructor):
    """Map logical resource name -> kwargs for every call of a mocked resource type"""
    return {c.args[0]: c.kwargs for c in constructor.call_args_list}


class ProviderMocks:
    """Patch aws, docker and pulumi across the program's modules"""

    def __init__(self):
        self.aws = MagicMock(name="aws")
        self.docker = MagicMock(name="docker")
        self.pulumi = MagicMock(name="pulumi")

        self.aws.get_availability_zones.return_value = Mock(names=["us-east-1a", "us-east-1b", "us-east-1c"])
        self.aws.get_caller_identity.return_value = Mock(account_id=ACCOUNT_ID)
        self.aws.get_partition.return_value = Mock(partition="aws")
        self.aws.route53.get_zone.return_value = Mock(zone_id="Z0123456789")

        for namespace, kind in NAMED_AWS_RESOURCES:
            getattr(getattr(self.aws, namespace), kind).side_effect = _named_resource(f"{namespace}.{kind}")
        for kind in NAMED_DOCKER_RESOURCES:
            getattr(self.docker, kind).side_effect = _named_resource(f"docker.{kind}")

        self._patchers = (
            [patch(f"{m}.aws", new=self.aws) for m in AWS_MODULES]
            + [patch(f"{m}.pulumi", new=self.pulumi) for m in PULUMI_MODULES]
            + [patch(f"{m}.docker", new=self.docker) for m in DOCKER_MODULES]
        )

    def start(self):
        for patcher in self._patchers:
            patcher.start()
        return self

    def stop(self):
        for patcher in reversed(self._patchers):
            patcher.stop()

    def __enter__(self):
        return self.start()

    def __exit__(self, *exc):
        self.stop()
        return False


class ProviderTestCase(unittest.TestCase):
    """TestCase with providers patched for the duration of each test"""

    def setUp(self):
        self.mocks = ProviderMocks().start()
        self.addCleanup(self.mocks.stop)
        self.aws = self.mocks.aws
        self.docker = self.mocks.docker
        self.pulumi = self.mocks.pulumi

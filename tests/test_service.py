"""
Unit tests for the Jenkins orchestrator service
"""

import json
import unittest

from tests.support import CERTIFICATE_ARN, ProviderTestCase, calls_by_name, make_settings

from src.cluster import create_cluster
from src.edge_router import create_edge_router
from src.errors import ConfigurationError
from src.network import create_network
from src.service import (check_deployment_tolerance, check_mount_points, create_jenkins_service,
                         jenkins_container_definitions, jenkins_mount_points)
from src.stack import create_identities
from src.storage import create_file_system


class TestServiceInvariants(unittest.TestCase):

    def test_mount_points_need_matching_volume(self):
        check_mount_points(jenkins_mount_points(), ["jenkins-home"])
        with self.assertRaises(ConfigurationError):
            check_mount_points(jenkins_mount_points(), ["other-volume"])

    def test_deployment_tolerance(self):
        check_deployment_tolerance(1, 0, 100)
        check_deployment_tolerance(1, 100, 200)
        for desired, minimum, maximum in [(1, 100, 100), (0, 0, 100), (1, 150, 100)]:
            with self.subTest(desired=desired, minimum=minimum, maximum=maximum):
                with self.assertRaises(ConfigurationError):
                    check_deployment_tolerance(desired, minimum, maximum)

    def test_container_definitions(self):
        definitions = jenkins_container_definitions("tkgregory/jenkins-with-aws:latest", "/ecs/jenkins", "us-east-1")

        self.assertEqual(len(definitions), 1)
        container = definitions[0]
        self.assertEqual(container["name"], "jenkins")
        self.assertEqual(container["portMappings"], [{"containerPort": 8080, "protocol": "tcp"}])
        self.assertEqual(container["mountPoints"][0]["containerPath"], "/var/jenkins_home")
        self.assertEqual(container["mountPoints"][0]["sourceVolume"], "jenkins-home")
        self.assertEqual(container["logConfiguration"]["options"]["awslogs-stream-prefix"], "jenkins")
        json.dumps(definitions)


class TestJenkinsService(ProviderTestCase):

    def _build(self, settings):
        network = create_network(settings)
        identities = create_identities(settings)
        cluster = create_cluster(network, settings)
        storage = create_file_system(network, settings)
        edge_router = create_edge_router(network, settings.edge_router, settings)
        jenkins = create_jenkins_service(network, cluster, storage, identities, edge_router, settings)
        return network, identities, storage, edge_router, jenkins

    def test_task_definition_shape(self):
        _, identities, storage, _, jenkins = self._build(make_settings())

        kwargs = self.aws.ecs.TaskDefinition.call_args.kwargs
        self.assertEqual(kwargs["family"], "jenkins")
        self.assertEqual(kwargs["cpu"], "512")
        self.assertEqual(kwargs["memory"], "1024")
        self.assertEqual(kwargs["requires_compatibilities"], ["FARGATE"])
        self.assertIs(kwargs["task_role_arn"], identities["jenkins_task"]["role_arn"])
        self.assertIs(kwargs["execution_role_arn"], identities["jenkins_execution"]["role_arn"])

        volume_kwargs = self.aws.ecs.TaskDefinitionVolumeArgs.call_args.kwargs
        self.assertEqual(volume_kwargs["name"], "jenkins-home")
        efs_kwargs = self.aws.ecs.TaskDefinitionVolumeEfsVolumeConfigurationArgs.call_args.kwargs
        self.assertEqual(efs_kwargs["transit_encryption"], "ENABLED")
        self.assertIs(efs_kwargs["file_system_id"], storage["file_system_id"])
        auth_kwargs = self.aws.ecs.TaskDefinitionVolumeEfsVolumeConfigurationAuthorizationConfigArgs.call_args.kwargs
        self.assertIs(auth_kwargs["access_point_id"], jenkins["access_point"]["access_point_id"])
        self.assertEqual(auth_kwargs["iam"], "ENABLED")

    def test_deployment_settings(self):
        self._build(make_settings())

        kwargs = self.aws.ecs.Service.call_args.kwargs
        self.assertEqual(kwargs["desired_count"], 1)
        self.assertEqual(kwargs["deployment_maximum_percent"], 100)
        self.assertEqual(kwargs["deployment_minimum_healthy_percent"], 0)
        self.assertEqual(kwargs["launch_type"], "FARGATE")
        self.assertEqual(kwargs["health_check_grace_period_seconds"], 300)
        self.assertIsNone(kwargs["load_balancers"])

    def test_service_can_reach_file_system(self):
        _, _, storage, _, jenkins = self._build(make_settings())

        rules = calls_by_name(self.aws.ec2.SecurityGroupRule)
        rule = rules["jenkins-to-efs"]
        self.assertEqual(rule["type"], "ingress")
        self.assertEqual((rule["from_port"], rule["to_port"]), (2049, 2049))
        self.assertIs(rule["source_security_group_id"], jenkins["security_group_id"])
        self.assertIs(rule["security_group_id"], storage["security_group_id"])
        self.assertNotIn("alb-to-jenkins", rules)

    def test_access_point_matches_jenkins_user(self):
        self._build(make_settings())
        self.aws.efs.AccessPointPosixUserArgs.assert_called_once_with(uid=1000, gid=1000)

    def test_bound_to_edge_router_target_group(self):
        _, _, _, edge_router, jenkins = self._build(make_settings(certificate_arn=CERTIFICATE_ARN))

        lb_kwargs = self.aws.ecs.ServiceLoadBalancerArgs.call_args.kwargs
        self.assertIs(lb_kwargs["target_group_arn"], edge_router["target_group_arn"])
        self.assertEqual(lb_kwargs["container_name"], "jenkins")
        self.assertEqual(self.aws.ecs.Service.call_args.kwargs["health_check_grace_period_seconds"], 300)
        self.assertEqual(lb_kwargs["container_port"], 8080)
        self.assertEqual(self.aws.ecs.Service.call_count, 1)

        rule = calls_by_name(self.aws.ec2.SecurityGroupRule)["alb-to-jenkins"]
        self.assertIs(rule["source_security_group_id"], edge_router["security_group_id"])
        self.assertIs(rule["security_group_id"], jenkins["security_group_id"])

    def test_orchestrator_permissions_are_scoped(self):
        _, identities, storage, _, _ = self._build(make_settings())

        grants = {g["name"]: g for g in identities["jenkins_task"]["grants"]}
        self.assertEqual(grants["run-kaniko-task"]["actions"], ["ecs:RunTask"])
        self.assertEqual(grants["run-kaniko-task"]["resources"],
                         ["arn:aws:ecs:us-east-1:123456789012:task-definition/kaniko-builder:*"])
        self.assertEqual(grants["pass-kaniko-roles"]["resources"],
                         [identities["kaniko_task"]["role_arn"], identities["kaniko_execution"]["role_arn"]])
        self.assertEqual(grants["mount-jenkins-home"]["resources"], [storage["file_system_arn"]])
        for g in grants.values():
            self.assertNotIn("*", g["resources"])

    def test_run_task_scope_follows_partition(self):
        self.aws.get_partition.return_value.partition = "aws-cn"
        _, identities, _, _, _ = self._build(make_settings(aws_region="cn-north-1"))

        grants = {g["name"]: g for g in identities["jenkins_task"]["grants"]}
        self.assertEqual(grants["run-kaniko-task"]["resources"],
                         ["arn:aws-cn:ecs:cn-north-1:123456789012:task-definition/kaniko-builder:*"])


if __name__ == '__main__':
    unittest.main()

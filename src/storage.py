"""
Shared Durable Store
EFS file system in the private subnets with scoped access points
"""
import re
from typing import Any, Dict

import pulumi
import pulumi_aws as aws

from config import PROJECT_NAME, Settings
from src.errors import ConfigurationError

_OCTAL_PERMISSIONS = re.compile(r"^[0-7]{3,4}$")


def create_file_system(network: Dict[str, Any], settings: Settings) -> Dict[str, Any]:
    """
    Create the EFS file system, its security group and one mount target per private subnet

    Ingress to the security group is added by the workloads that mount it.
    """
    tags = settings.common_tags

    efs_sg = aws.ec2.SecurityGroup("efs-sg",
        name=f"{PROJECT_NAME}-efs-sg",
        description="NFS access to the Jenkins home file system",
        vpc_id=network["vpc_id"],
        egress=[aws.ec2.SecurityGroupEgressArgs(
            protocol="-1",
            from_port=0,
            to_port=0,
            cidr_blocks=["0.0.0.0/0"])],
        tags={**tags, "Name": f"{PROJECT_NAME}-efs-sg"})

    # No retention: destroyed together with the stack
    efs = aws.efs.FileSystem("jenkins-file-system",
        encrypted=True,
        performance_mode="generalPurpose",
        throughput_mode="bursting",
        tags={**tags, "Name": f"{PROJECT_NAME}-efs"})

    mount_targets = []
    for i, subnet_id in enumerate(network["private_subnet_ids"]):
        mount_target = aws.efs.MountTarget(f"efs-mount-{i+1}",
            file_system_id=efs.id,
            subnet_id=subnet_id,
            security_groups=[efs_sg.id])
        mount_targets.append(mount_target)

    return {
        "file_system": efs,
        "file_system_id": efs.id,
        "file_system_arn": efs.arn,
        "security_group": efs_sg,
        "security_group_id": efs_sg.id,
        "mount_targets": mount_targets,
        "access_points": {},
        "tags": tags,
    }


def create_access_point(store: Dict[str, Any], name: str, path: str, uid: int, gid: int,
                        acl_owner_uid: int, acl_owner_gid: int, permissions: str) -> Dict[str, Any]:
    """
    Register a scoped mount point on the file system

    Args:
        store: Result of create_file_system
        name: Logical name of the access point
        path: Root directory exposed to the mounting workload
        uid: POSIX user every file operation is performed as
        gid: POSIX group every file operation is performed as
        acl_owner_uid: Owner of the root directory when EFS creates it
        acl_owner_gid: Group of the root directory when EFS creates it
        permissions: Octal mode of the root directory, e.g. "755"

    uid/gid must match the user the container runs as. A mismatch is not
    visible here and only shows up as permission errors once the task starts.
    """
    if not path.startswith("/"):
        raise ConfigurationError(f"Access point path must be absolute, got '{path}'")
    if not _OCTAL_PERMISSIONS.match(permissions):
        raise ConfigurationError(f"Access point permissions must be octal, got '{permissions}'")
    for label, value in (("uid", uid), ("gid", gid), ("acl owner uid", acl_owner_uid),
                         ("acl owner gid", acl_owner_gid)):
        if not isinstance(value, int) or value < 0:
            raise ConfigurationError(f"Access point {label} must be a non-negative integer, got {value!r}")

    access_point = aws.efs.AccessPoint(name,
        file_system_id=store["file_system_id"],
        posix_user=aws.efs.AccessPointPosixUserArgs(
            uid=uid,
            gid=gid),
        root_directory=aws.efs.AccessPointRootDirectoryArgs(
            path=path,
            creation_info=aws.efs.AccessPointRootDirectoryCreationInfoArgs(
                owner_uid=acl_owner_uid,
                owner_gid=acl_owner_gid,
                permissions=permissions)),
        tags={**store["tags"], "Name": name})

    pulumi.log.info(f"EFS access point {path} as {uid}:{gid}; the mounting container must run as this user")

    result = {
        "access_point": access_point,
        "access_point_id": access_point.id,
        "access_point_arn": access_point.arn,
        "path": path,
        "uid": uid,
        "gid": gid,
    }
    store["access_points"][name] = result
    return result

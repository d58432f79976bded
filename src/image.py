"""
Image Build & Publish
Builds the Kaniko builder image from the local context and pushes it to ECR during `pulumi up`
"""
import hashlib
import os
from typing import Any, Dict

import pulumi
import pulumi_aws as aws
import pulumi_docker as docker

from config import BUILDER_REPOSITORY, PUBLISH_TAG, Settings
from src.errors import ConfigurationError


def context_digest(context_dir: str) -> str:
    """
    SHA-256 over every file path and content under the build context

    Walk order is sorted so the same tree always gives the same digest.
    """
    digest = hashlib.sha256()
    for root, dirs, files in os.walk(context_dir):
        dirs.sort()
        for file_name in sorted(files):
            path = os.path.join(root, file_name)
            relative = os.path.relpath(path, context_dir).replace(os.sep, "/")
            digest.update(relative.encode("utf-8"))
            digest.update(b"\0")
            with open(path, "rb") as f:
                for chunk in iter(lambda: f.read(65536), b""):
                    digest.update(chunk)
            digest.update(b"\0")
    return digest.hexdigest()


def check_build_context(context_dir: str) -> str:
    """
    Return the Dockerfile path of a build context

    Raises:
        ConfigurationError: the context is missing or has no Dockerfile
    """
    dockerfile = os.path.join(context_dir, "Dockerfile")
    if not os.path.isfile(dockerfile):
        raise ConfigurationError(f"Build context {context_dir} has no Dockerfile")
    return dockerfile


def build_image(context_dir: str, settings: Settings) -> Dict[str, Any]:
    """Build the image locally and give it a content-addressed tag"""
    dockerfile = check_build_context(context_dir)

    local_ref = f"{BUILDER_REPOSITORY}:{context_digest(context_dir)[:12]}"

    image = docker.Image("kaniko-builder-image",
        image_name=local_ref,
        build=docker.DockerBuildArgs(
            context=context_dir,
            dockerfile=dockerfile,
            platform="linux/amd64"),
        skip_push=True)

    pulumi.log.info(f"Kaniko builder image: {local_ref} from {context_dir}")

    return {
        "image": image,
        "local_ref": local_ref,
        "image_name": image.image_name,
    }


def create_registry_provider(repository: Dict[str, Any]) -> docker.Provider:
    """Docker provider logged in to the repository's registry with an ECR token"""
    token = aws.ecr.get_authorization_token_output(registry_id=repository["registry_id"])
    return docker.Provider("ecr-docker",
        registry_auth=[docker.ProviderRegistryAuthArgs(
            address=token.proxy_endpoint,
            username=token.user_name,
            password=token.password)])


def publish_image(built: Dict[str, Any], repository: Dict[str, Any], settings: Settings) -> Dict[str, Any]:
    """
    Copy the local image to <repository uri>:latest and push it

    The returned image_uri resolves only after the push, so anything
    referencing it waits for the image to exist remotely.
    """
    provider = create_registry_provider(repository)
    destination = pulumi.Output.concat(repository["repository_url"], f":{PUBLISH_TAG}")

    tag = docker.Tag("kaniko-builder-tag",
        source_image=built["image_name"],
        target_image=destination,
        opts=pulumi.ResourceOptions(provider=provider, depends_on=[built["image"]]))

    pushed = docker.RegistryImage("kaniko-builder-push",
        name=tag.target_image,
        keep_remotely=True,
        triggers={"source_image_id": tag.source_image_id},
        opts=pulumi.ResourceOptions(provider=provider))

    pulumi.log.info(f"Publishing {built['local_ref']} to the {repository['name']} repository")

    return {
        "tag": tag,
        "registry_image": pushed,
        "destination": destination,
        "image_uri": pushed.name,
        "digest": pushed.sha256_digest,
    }

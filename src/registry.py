"""
Container Registries
ECR repositories for the builder tool image and for the images it produces
"""
import json
from typing import Any, Dict

import pulumi_aws as aws

from config import BUILDER_REPOSITORY, DEMO_REPOSITORY, Settings


def create_repository(name: str, settings: Settings) -> Dict[str, Any]:
    """
    Create an ECR repository that is emptied and removed with the stack

    Args:
        name: Repository name
        settings: Run settings (for tags)
    """
    repository = aws.ecr.Repository(name,
        name=name,
        image_tag_mutability="MUTABLE",
        force_delete=True,
        image_scanning_configuration=aws.ecr.RepositoryImageScanningConfigurationArgs(
            scan_on_push=True),
        tags={**settings.common_tags, "Name": name})

    # Lifecycle policy to clean up old images
    aws.ecr.LifecyclePolicy(f"{name}-lifecycle",
        repository=repository.name,
        policy=json.dumps({
            "rules": [{
                "rulePriority": 1,
                "description": "Keep last 10 images",
                "selection": {
                    "tagStatus": "any",
                    "countType": "imageCountMoreThan",
                    "countNumber": 10
                },
                "action": {"type": "expire"}
            }]
        }))

    return {
        "name": name,
        "repository": repository,
        "repository_arn": repository.arn,
        "repository_url": repository.repository_url,
        "registry_id": repository.registry_id,
    }


def create_registries(settings: Settings) -> Dict[str, Dict[str, Any]]:
    """Builder-tool and output-artifact registries, kept separate"""
    return {
        "builder": create_repository(BUILDER_REPOSITORY, settings),
        "demo": create_repository(DEMO_REPOSITORY, settings),
    }

"""
Stack Assembly
Declares every component in dependency order; each step only uses values returned by earlier steps
"""
from typing import Any, Dict

import pulumi

from config import Settings
from src.cluster import create_cluster
from src.dns import create_dns_record, resolve_hosted_zone_id
from src.edge_router import create_edge_router
from src.iam import create_identity
from src.image import build_image, check_build_context, publish_image
from src.job_runner import create_kaniko_job
from src.network import create_network
from src.registry import create_registries
from src.service import create_jenkins_service
from src.storage import create_file_system


def create_identities(settings: Settings) -> Dict[str, Dict[str, Any]]:
    """One role per workload and trust boundary; permissions are granted by the workloads"""
    return {
        "jenkins_task": create_identity("jenkins-task-role", settings),
        "jenkins_execution": create_identity("jenkins-execution-role", settings),
        "kaniko_task": create_identity("kaniko-task-role", settings),
        "kaniko_execution": create_identity("kaniko-execution-role", settings),
    }


def build_stack(settings: Settings) -> Dict[str, Any]:
    """
    Declare the full resource graph

    Returns:
        Dict of component results; edge_router and dns are None when disabled
    """
    # 0. Lookups and local checks; a failure here raises before any resource is registered
    hosted_zone_id = resolve_hosted_zone_id(settings.edge_router, settings.dns)
    check_build_context(settings.builder_context_dir)

    # 1. Network and identities, referenced by everything else
    network = create_network(settings)
    identities = create_identities(settings)

    # 2. Cluster and durable store
    cluster = create_cluster(network, settings)
    storage = create_file_system(network, settings)

    # 3. Edge router (conditional); its target group must exist before the service
    edge_router = create_edge_router(network, settings.edge_router, settings)

    # 4. Jenkins
    jenkins = create_jenkins_service(network, cluster, storage, identities, edge_router, settings)

    # 5. DNS (nested conditional)
    dns = create_dns_record(edge_router, settings.dns, hosted_zone_id, settings)

    # 6. Registries, builder image, Kaniko job
    registries = create_registries(settings)
    built = build_image(settings.builder_context_dir, settings)
    published = publish_image(built, registries["builder"], settings)
    kaniko = create_kaniko_job(identities, registries, published, settings)

    pulumi.log.info(
        f"Stack declared: edge router {'on' if edge_router else 'off'}, DNS {'on' if dns else 'off'}")

    return {
        "settings": settings,
        "network": network,
        "identities": identities,
        "cluster": cluster,
        "storage": storage,
        "edge_router": edge_router,
        "jenkins": jenkins,
        "dns": dns,
        "registries": registries,
        "image": {"build": built, "publish": published},
        "kaniko": kaniko,
    }

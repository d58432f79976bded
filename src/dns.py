"""
DNS Binding
jenkins.<zone> CNAME to the edge router, only when both router and hosted zone are configured
"""
from typing import Any, Dict, Optional

import pulumi
import pulumi_aws as aws

from config import DNS_TTL_SECONDS, DnsConfig, DnsEnabled, EdgeRouterConfig, EdgeRouterEnabled, Settings
from src.errors import LookupFailure


def lookup_hosted_zone(hosted_zone_name: str):
    """
    Resolve an existing public hosted zone by name

    Raises:
        LookupFailure: the zone does not exist or cannot be read
    """
    try:
        return aws.route53.get_zone(name=hosted_zone_name, private_zone=False)
    except Exception as e:
        raise LookupFailure(f"Hosted zone '{hosted_zone_name}' could not be resolved: {e}") from e


def resolve_hosted_zone_id(edge_config: EdgeRouterConfig, dns_config: DnsConfig) -> Optional[str]:
    """
    Look up the zone the record will live in, before anything is declared

    Returns None when no record will be created.
    """
    if not isinstance(edge_config, EdgeRouterEnabled) or not isinstance(dns_config, DnsEnabled):
        return None
    return lookup_hosted_zone(dns_config.hosted_zone_name).zone_id


def create_dns_record(edge_router: Optional[Dict[str, Any]], dns_config: DnsConfig,
                      hosted_zone_id: Optional[str], settings: Settings) -> Optional[Dict[str, Any]]:
    """Create the CNAME record in the resolved zone, or return None when DNS is disabled"""
    if edge_router is None or not isinstance(dns_config, DnsEnabled):
        pulumi.log.info("DNS binding disabled")
        return None
    if hosted_zone_id is None:
        raise LookupFailure(f"Hosted zone '{dns_config.hosted_zone_name}' was not resolved")

    record = aws.route53.Record("jenkins-cname",
        zone_id=hosted_zone_id,
        name=dns_config.record_name,
        type="CNAME",
        ttl=DNS_TTL_SECONDS,
        records=[edge_router["dns_name"]])

    pulumi.log.info(f"DNS binding: {dns_config.record_name} (TTL {DNS_TTL_SECONDS}s) -> edge router")

    return {
        "record": record,
        "zone_id": hosted_zone_id,
        "record_name": dns_config.record_name,
        "target": edge_router["dns_name"],
        "ttl": DNS_TTL_SECONDS,
    }

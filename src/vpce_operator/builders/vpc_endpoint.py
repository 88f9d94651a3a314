"""Builder for VpcEndpoint configurations."""

from __future__ import annotations

from typing import Any

from ..constants import NAMESPACE_FIELD_PATH


def _build_rules(rules: list[dict[str, Any]] | None, direction: str) -> list[dict[str, Any]]:
    built = []
    for idx, rule in enumerate(rules or []):
        from_port = rule.get("fromPort")
        to_port = rule.get("toPort")
        if from_port is None or to_port is None:
            raise ValueError(f"{direction} rule {idx}: fromPort and toPort are required")
        if int(from_port) > int(to_port):
            raise ValueError(f"{direction} rule {idx}: fromPort {from_port} is greater than toPort {to_port}")
        built.append({
            "from_port": int(from_port),
            "to_port": int(to_port),
            "protocol": rule.get("protocol", "tcp"),
            "cidr_ip": rule.get("cidrIp"),
        })
    return built


def _build_tags(tags: dict[str, str] | list[dict[str, str]] | None) -> dict[str, str]:
    """Accept tags as a mapping or as a list of ``{key, value}`` pairs."""
    if not tags:
        return {}
    if isinstance(tags, dict):
        return dict(tags)
    return {tag["key"]: tag.get("value", "") for tag in tags}


def _build_domain_name_ref(ref: dict[str, Any] | None) -> dict[str, Any] | None:
    if not ref:
        return None

    value_from = ref.get("valueFrom") or {}
    hcp_ref = value_from.get("hostedControlPlaneRef")
    if hcp_ref is not None:
        field_path = (hcp_ref.get("namespaceFieldRef") or {}).get("fieldPath")
        if field_path != NAMESPACE_FIELD_PATH:
            raise ValueError(
                f"domainNameRef hostedControlPlaneRef: unsupported fieldPath {field_path!r}, "
                f"only {NAMESPACE_FIELD_PATH} is supported"
            )

    built = {
        "name": ref.get("name"),
        "dns_ref": (value_from.get("dnsRef") or {}).get("name"),
        "hosted_control_plane_ref": hcp_ref is not None,
    }
    if not any(built.values()):
        raise ValueError("domainNameRef needs one of name, valueFrom.dnsRef or valueFrom.hostedControlPlaneRef")
    return built


def _build_associated_vpcs(vpcs: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    built = []
    for idx, vpc in enumerate(vpcs or []):
        secret_ref = vpc.get("credentialsSecretRef") or {}
        if not (vpc.get("vpcId") and vpc.get("region") and secret_ref.get("name")):
            raise ValueError(f"associatedVpcs[{idx}]: vpcId, region and credentialsSecretRef.name are required")
        built.append({
            "vpc_id": vpc["vpcId"],
            "region": vpc["region"],
            "credentials_secret_ref": {"name": secret_ref["name"], "namespace": secret_ref.get("namespace")},
        })
    return built


def _build_custom_dns(custom_dns: dict[str, Any] | None) -> dict[str, Any] | None:
    zone = (custom_dns or {}).get("route53PrivateHostedZone")
    if not zone:
        return None

    record = zone.get("record", {})
    hostname = record.get("hostname")
    external_name_service = record.get("externalNameService", {}).get("name")
    if external_name_service and not hostname:
        raise ValueError("customDns record.externalNameService requires record.hostname")

    auto_discover = zone.get("autoDiscoverPrivateHostedZone", False)
    zone_id = zone.get("id")
    domain_name = zone.get("domainName")
    domain_name_ref = _build_domain_name_ref(zone.get("domainNameRef"))
    if not (auto_discover or zone_id or domain_name or domain_name_ref):
        raise ValueError(
            "customDns.route53PrivateHostedZone needs one of autoDiscoverPrivateHostedZone, id, "
            "domainName or domainNameRef"
        )
    if zone_id and (domain_name or domain_name_ref):
        raise ValueError("cannot set both a Route53 hosted zone id and domain name")

    return {
        "auto_discover": auto_discover,
        "zone_id": zone_id,
        "domain_name": domain_name.rstrip(".") if domain_name else None,
        "domain_name_ref": domain_name_ref,
        "associated_vpcs": _build_associated_vpcs(zone.get("associatedVpcs")),
        "hostname": hostname,
        "external_name_service": external_name_service,
    }


def create_endpoint_config_from_spec(spec: dict[str, Any]) -> dict[str, Any]:
    """Create a VPC endpoint configuration dict from CRD spec.

    Args:
        spec: VpcEndpoint CRD spec

    Returns:
        Configuration dict for the reconcilers

    Raises:
        ValueError: If the CRD spec is internally inconsistent
    """
    security_group = spec.get("securityGroup", {})
    vpc = spec.get("vpc", {})
    service_name_ref = spec.get("serviceNameRef", {})

    if not spec.get("serviceName") and not service_name_ref:
        raise ValueError("one of serviceName or serviceNameRef is required")

    config_dict = {
        "service_name": spec.get("serviceName"),
        "service_name_ref": service_name_ref.get("name"),
        "endpoint_service_ref": service_name_ref.get("valueFrom", {}).get("awsEndpointServiceRef", {}).get("name"),
        "ingress_rules": _build_rules(security_group.get("ingressRules"), "ingress"),
        "egress_rules": _build_rules(security_group.get("egressRules"), "egress"),
        "region": spec.get("region"),
        "private_dns_enabled": spec.get("enablePrivateDns", False),
        "auto_discover_subnets": vpc.get("autoDiscoverSubnets", False),
        "subnet_ids": list(vpc.get("subnetIds", [])),
        "vpc_ids": list(vpc.get("ids", [])),
        "vpc_tags": _build_tags(vpc.get("tags")),
        "subnet_tags": _build_tags(vpc.get("subnetTags")),
        "credential_ref": spec.get("awsCredentialOverrideRef"),
        "assume_role_arn": spec.get("assumeRoleArn") or None,
        "custom_dns": _build_custom_dns(spec.get("customDns")),
    }

    if config_dict["auto_discover_subnets"] and config_dict["subnet_ids"]:
        raise ValueError("vpc.autoDiscoverSubnets and vpc.subnetIds are mutually exclusive")
    if not config_dict["auto_discover_subnets"] and not config_dict["subnet_ids"]:
        raise ValueError("one of vpc.autoDiscoverSubnets or vpc.subnetIds is required")
    if config_dict["vpc_tags"] and config_dict["vpc_ids"]:
        raise ValueError("vpc.tags and vpc.ids are mutually exclusive")
    if (config_dict["vpc_tags"] or config_dict["vpc_ids"]) and not config_dict["auto_discover_subnets"]:
        raise ValueError("vpc.autoDiscoverSubnets must be true when selecting VPCs by id or tag")
    if config_dict["auto_discover_subnets"] and config_dict["region"]:
        raise ValueError("vpc.autoDiscoverSubnets is not supported with region")

    custom_dns = config_dict["custom_dns"]
    if custom_dns and custom_dns["auto_discover"] and config_dict["region"]:
        raise ValueError("customDns autoDiscoverPrivateHostedZone is not supported with region")

    return config_dict

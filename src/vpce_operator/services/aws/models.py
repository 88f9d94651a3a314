"""Models for AWS security group rules."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

_PROTOCOL_ALIASES = {"all": "-1", "": "-1"}


def normalize_protocol(protocol: str | int | None) -> str:
    """AWS reports protocols as lower-case names or ``-1`` for all traffic."""
    value = str(protocol if protocol is not None else "").strip().lower()
    return _PROTOCOL_ALIASES.get(value, value)


@dataclass(frozen=True)
class SecurityGroupRule:
    """A single security group rule with exactly one source or destination."""

    is_egress: bool
    protocol: str
    from_port: int
    to_port: int
    group_id: str | None = None
    cidr_ip: str | None = None

    @classmethod
    def from_aws(cls, rule: dict[str, Any]) -> SecurityGroupRule:
        """Build from a ``DescribeSecurityGroupRules`` entry."""
        return cls(
            is_egress=bool(rule.get("IsEgress", False)),
            protocol=normalize_protocol(rule.get("IpProtocol")),
            from_port=int(rule.get("FromPort", -1)),
            to_port=int(rule.get("ToPort", -1)),
            group_id=(rule.get("ReferencedGroupInfo") or {}).get("GroupId"),
            cidr_ip=rule.get("CidrIpv4"),
        )

    def matches(self, other: SecurityGroupRule) -> bool:
        """Compare direction, protocol, port range and peer field by field."""
        return (
            self.is_egress == other.is_egress
            and self.protocol == other.protocol
            and self.from_port == other.from_port
            and self.to_port == other.to_port
            and self.group_id == other.group_id
            and self.cidr_ip == other.cidr_ip
        )

    def to_ip_permission(self) -> dict[str, Any]:
        """Render as an ``IpPermissions`` entry for the authorize calls."""
        permission: dict[str, Any] = {
            "IpProtocol": self.protocol,
            "FromPort": self.from_port,
            "ToPort": self.to_port,
        }
        if self.group_id:
            permission["UserIdGroupPairs"] = [{"GroupId": self.group_id}]
        if self.cidr_ip:
            permission["IpRanges"] = [{"CidrIp": self.cidr_ip}]
        return permission

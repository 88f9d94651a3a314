"""Tests for the AWS client boundary."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError
from prometheus_client import CollectorRegistry

from vpce_operator.metrics import OperatorMetrics
from vpce_operator.services.aws.client import AWSClient, strip_hosted_zone_prefix, tag_filters
from vpce_operator.services.aws.errors import AWSError, ErrorKind


def client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{code} happened"}}, operation)


@pytest.fixture
def aws():
    """AWSClient with mocked boto3 clients."""
    with patch("vpce_operator.services.aws.client.boto3.session.Session") as mock_session:
        ec2 = MagicMock()
        route53 = MagicMock()
        mock_session.return_value.client.side_effect = lambda name, config=None: {
            "ec2": ec2,
            "route53": route53,
        }[name]
        client = AWSClient("us-east-1", metrics=OperatorMetrics(CollectorRegistry()))
    return client


def pages(*items):
    paginator = MagicMock()
    paginator.paginate.return_value = list(items)
    return paginator


class TestClientConstruction:
    """Test cases for AWSClient construction."""

    @patch("vpce_operator.services.aws.client.boto3.session.Session")
    def test_static_credentials(self, mock_session):
        """Test that static credentials and region are passed to the session."""
        AWSClient("eu-west-1", access_key="AKIA", secret_key="secret")

        kwargs = mock_session.call_args.kwargs
        assert kwargs["aws_access_key_id"] == "AKIA"
        assert kwargs["aws_secret_access_key"] == "secret"
        assert kwargs["region_name"] == "eu-west-1"
        services = [call.args[0] for call in mock_session.return_value.client.call_args_list]
        assert services == ["ec2", "route53"]

    @patch("vpce_operator.services.aws.client.boto3.session.Session")
    def test_assume_role(self, mock_session):
        """Test that clients are built from the assumed role's temporary credentials."""
        sts = MagicMock()
        sts.assume_role.return_value = {
            "Credentials": {"AccessKeyId": "ASIA", "SecretAccessKey": "temp", "SessionToken": "token"}
        }
        mock_session.return_value.client.side_effect = lambda name, config=None: sts if name == "sts" else MagicMock()

        AWSClient("us-east-1", role_arn="arn:aws:iam::123456789012:role/vpce")

        sts.assume_role.assert_called_once_with(
            RoleArn="arn:aws:iam::123456789012:role/vpce", RoleSessionName="vpce-operator"
        )
        assumed = mock_session.call_args_list[1].kwargs
        assert assumed["aws_access_key_id"] == "ASIA"
        assert assumed["aws_secret_access_key"] == "temp"
        assert assumed["aws_session_token"] == "token"
        assert assumed["region_name"] == "us-east-1"

    @patch("vpce_operator.services.aws.client.boto3.session.Session")
    def test_assume_role_denied(self, mock_session):
        """Test that a role that cannot be assumed raises a classified error."""
        sts = MagicMock()
        sts.assume_role.side_effect = client_error("AccessDenied", "AssumeRole")
        mock_session.return_value.client.return_value = sts

        with pytest.raises(AWSError) as exc_info:
            AWSClient("us-east-1", role_arn="arn:aws:iam::123456789012:role/vpce")

        assert exc_info.value.action == "sts:AssumeRole"
        assert mock_session.call_count == 1


class TestErrorBoundary:
    """Test cases for ClientError translation."""

    def test_client_error_becomes_aws_error(self, aws):
        """Test that boto3 failures surface as classified AWSError."""
        aws.ec2.create_security_group.side_effect = client_error("UnauthorizedOperation", "CreateSecurityGroup")

        with pytest.raises(AWSError) as exc_info:
            aws.create_security_group("name", "vpc-1", "desc", {"k": "v"})

        assert exc_info.value.kind is ErrorKind.UNAUTHORIZED
        assert exc_info.value.action == "ec2:CreateSecurityGroup"
        assert isinstance(exc_info.value.__cause__, ClientError)

    def test_api_calls_counted(self, aws):
        """Test that successes and failures are counted per operation."""
        aws.ec2.create_tags.return_value = {}
        aws.create_tags(["sg-1"], {"k": "v"})

        registry = aws.metrics.registry
        assert registry.get_sample_value(
            "vpce_operator_api_call_total",
            {"api_type": "ec2", "operation": "create_tags", "result": "success"},
        ) == 1.0

    def test_paginate_translates_errors(self, aws):
        """Test that paginator failures are classified too."""
        paginator = MagicMock()
        paginator.paginate.side_effect = client_error("RequestLimitExceeded", "DescribeSubnets")
        aws.ec2.get_paginator.return_value = paginator

        with pytest.raises(AWSError) as exc_info:
            aws.find_subnets({}, ["kubernetes.io/cluster/c1"])

        assert exc_info.value.kind is ErrorKind.THROTTLED

    @patch("vpce_operator.utils.rate_limit._aws_limiter")
    def test_paginate_waits_per_page(self, mock_limiter, aws):
        """Test that every page fetch waits on the shared AWS limiter."""
        aws.ec2.get_paginator.return_value = pages(
            {"Subnets": [{"SubnetId": "subnet-a"}]},
            {"Subnets": [{"SubnetId": "subnet-b"}]},
            {"Subnets": [{"SubnetId": "subnet-c"}]},
        )

        subnets = aws.find_subnets({}, ["kubernetes.io/cluster/c1"])

        assert [s["SubnetId"] for s in subnets] == ["subnet-a", "subnet-b", "subnet-c"]
        # three pages plus the fetch that ends the iteration
        assert mock_limiter.wait.call_count == 4


class TestSecurityGroups:
    """Test cases for security group operations."""

    def test_describe_not_found_is_absent(self, aws):
        """Test that a missing group is reported as None."""
        aws.ec2.describe_security_groups.side_effect = client_error("InvalidGroup.NotFound", "DescribeSecurityGroups")

        assert aws.describe_security_group("sg-gone") is None

    def test_describe_empty_id_skips_call(self, aws):
        """Test that an empty id never describes the whole account."""
        assert aws.describe_security_group("") is None
        aws.ec2.describe_security_groups.assert_not_called()

    def test_describe_other_errors_propagate(self, aws):
        """Test that non-not-found errors are raised."""
        aws.ec2.describe_security_groups.side_effect = client_error("UnauthorizedOperation", "DescribeSecurityGroups")

        with pytest.raises(AWSError):
            aws.describe_security_group("sg-1")

    def test_find_by_tags(self, aws):
        """Test the tag filters used to find managed groups."""
        aws.ec2.get_paginator.return_value = pages({"SecurityGroups": [{"GroupId": "sg-1"}]})

        groups = aws.find_security_groups("c1-api-sg", "kubernetes.io/cluster/c1")

        assert groups == [{"GroupId": "sg-1"}]
        filters = aws.ec2.get_paginator.return_value.paginate.call_args.kwargs["Filters"]
        assert {"Name": "tag:Name", "Values": ["c1-api-sg"]} in filters
        assert {"Name": "tag-key", "Values": ["kubernetes.io/cluster/c1"]} in filters

    def test_delete_not_found_is_success(self, aws):
        """Test that deleting a missing group succeeds."""
        aws.ec2.delete_security_group.side_effect = client_error("InvalidGroup.NotFound", "DeleteSecurityGroup")

        aws.delete_security_group("sg-gone")

    def test_delete_dependency_violation_raises(self, aws):
        """Test that a group still in use raises a dependency violation."""
        aws.ec2.delete_security_group.side_effect = client_error("DependencyViolation", "DeleteSecurityGroup")

        with pytest.raises(AWSError) as exc_info:
            aws.delete_security_group("sg-1")

        assert exc_info.value.is_dependency_violation

    def test_authorize_empty_is_noop(self, aws):
        """Test that empty permission lists skip the API call."""
        aws.authorize_security_group_ingress("sg-1", [], {"k": "v"})
        aws.authorize_security_group_egress("sg-1", [], {"k": "v"})

        aws.ec2.authorize_security_group_ingress.assert_not_called()
        aws.ec2.authorize_security_group_egress.assert_not_called()

    def test_authorize_tags_rules(self, aws):
        """Test that created rules are tagged."""
        permission = {"IpProtocol": "tcp", "FromPort": 443, "ToPort": 443}

        aws.authorize_security_group_ingress("sg-1", [permission], {"k": "v"})

        kwargs = aws.ec2.authorize_security_group_ingress.call_args.kwargs
        assert kwargs["IpPermissions"] == [permission]
        assert kwargs["TagSpecifications"][0]["ResourceType"] == "security-group-rule"


class TestVpcEndpoints:
    """Test cases for VPC endpoint operations."""

    def test_create_interface_endpoint(self, aws):
        """Test endpoint creation parameters."""
        aws.ec2.create_vpc_endpoint.return_value = {"VpcEndpoint": {"VpcEndpointId": "vpce-1", "State": "pending"}}

        endpoint = aws.create_vpc_endpoint("vpc-1", "com.amazonaws.vpce.svc", ["sg-1"], {"Name": "n"})

        assert endpoint["VpcEndpointId"] == "vpce-1"
        kwargs = aws.ec2.create_vpc_endpoint.call_args.kwargs
        assert kwargs["VpcEndpointType"] == "Interface"
        assert kwargs["SecurityGroupIds"] == ["sg-1"]
        assert kwargs["PrivateDnsEnabled"] is False

    def test_delete_unsuccessful_entry_raises(self, aws):
        """Test that per-endpoint failures in the response body are raised."""
        aws.ec2.delete_vpc_endpoints.return_value = {
            "Unsuccessful": [{"ResourceId": "vpce-1", "Error": {"Code": "DependencyViolation", "Message": "in use"}}]
        }

        with pytest.raises(AWSError) as exc_info:
            aws.delete_vpc_endpoint("vpce-1")

        assert exc_info.value.is_dependency_violation
        assert exc_info.value.action == "ec2:DeleteVpcEndpoints"

    def test_delete_unsuccessful_not_found_ignored(self, aws):
        """Test that a not-found entry in the response body counts as deleted."""
        aws.ec2.delete_vpc_endpoints.return_value = {
            "Unsuccessful": [{"ResourceId": "vpce-1", "Error": {"Code": "InvalidVpcEndpoint.NotFound"}}]
        }

        aws.delete_vpc_endpoint("vpce-1")

    def test_modify_noop_without_changes(self, aws):
        """Test that modify skips the call when nothing changes."""
        aws.modify_vpc_endpoint("vpce-1")
        aws.ec2.modify_vpc_endpoint.assert_not_called()

    def test_modify_passes_only_given_changes(self, aws):
        """Test that only non-empty membership changes are sent."""
        aws.modify_vpc_endpoint("vpce-1", remove_subnet_ids=["subnet-1"])

        aws.ec2.modify_vpc_endpoint.assert_called_once_with(VpcEndpointId="vpce-1", RemoveSubnetIds=["subnet-1"])

    def test_service_azs_requires_single_service(self, aws):
        """Test that an ambiguous service name is rejected."""
        aws.ec2.describe_vpc_endpoint_services.return_value = {"ServiceDetails": []}

        with pytest.raises(ValueError):
            aws.get_vpc_endpoint_service_azs("com.amazonaws.vpce.svc")

    def test_get_vpc_id_single_vpc(self, aws):
        """Test resolving the VPC of a subnet set."""
        aws.ec2.get_paginator.return_value = pages(
            {"Subnets": [{"SubnetId": "subnet-1", "VpcId": "vpc-1"}, {"SubnetId": "subnet-2", "VpcId": "vpc-1"}]}
        )

        assert aws.get_vpc_id(["subnet-1", "subnet-2"]) == "vpc-1"

    def test_get_vpc_id_rejects_multiple_vpcs(self, aws):
        """Test that subnets spanning VPCs are rejected."""
        aws.ec2.get_paginator.return_value = pages(
            {"Subnets": [{"SubnetId": "subnet-1", "VpcId": "vpc-1"}, {"SubnetId": "subnet-2", "VpcId": "vpc-2"}]}
        )

        with pytest.raises(ValueError):
            aws.get_vpc_id(["subnet-1", "subnet-2"])

    def test_select_vpc_least_used(self, aws):
        """Test that the VPC with the fewest endpoints wins."""
        aws.ec2.get_paginator.return_value = pages(
            {"VpcEndpoints": [{"VpcId": "vpc-1"}, {"VpcId": "vpc-1"}, {"VpcId": "vpc-2"}]}
        )

        assert aws.select_vpc(["vpc-1", "vpc-2", "vpc-3"]) == "vpc-3"

    def test_find_vpc_ids_by_tags(self, aws):
        """Test that VPCs are looked up by tag values."""
        aws.ec2.get_paginator.return_value = pages({"Vpcs": [{"VpcId": "vpc-4"}, {"VpcId": "vpc-3"}]})

        assert aws.find_vpc_ids_by_tags({"team": "net"}) == ["vpc-3", "vpc-4"]
        filters = aws.ec2.get_paginator.return_value.paginate.call_args.kwargs["Filters"]
        assert filters == [{"Name": "tag:team", "Values": ["net"]}]

    def test_find_vpc_ids_requires_tags(self, aws):
        """Test that an empty selector never matches every VPC."""
        with pytest.raises(ValueError):
            aws.find_vpc_ids_by_tags({})

        aws.ec2.get_paginator.assert_not_called()


class TestRoute53:
    """Test cases for Route53 operations."""

    def test_list_hosted_zones_follows_next_token(self, aws):
        """Test that every page of zone summaries is collected."""
        aws.route53.list_hosted_zones_by_vpc.side_effect = [
            {"HostedZoneSummaries": [{"HostedZoneId": "Z1", "Name": "a."}], "NextToken": "t"},
            {"HostedZoneSummaries": [{"HostedZoneId": "Z2", "Name": "b."}]},
        ]

        zones = aws.list_hosted_zones_by_vpc("vpc-1", "us-east-1")

        assert [z["HostedZoneId"] for z in zones] == ["Z1", "Z2"]
        assert aws.route53.list_hosted_zones_by_vpc.call_args_list[1].kwargs["NextToken"] == "t"

    def test_get_hosted_zone_not_found(self, aws):
        """Test that a missing zone is reported as None."""
        aws.route53.get_hosted_zone.side_effect = client_error("NoSuchHostedZone", "GetHostedZone")

        assert aws.get_hosted_zone("Z1") is None

    def test_delete_hosted_zone_not_empty(self, aws):
        """Test that a zone with records left raises a dependency violation."""
        aws.route53.delete_hosted_zone.side_effect = client_error("HostedZoneNotEmpty", "DeleteHostedZone")

        with pytest.raises(AWSError) as exc_info:
            aws.delete_hosted_zone("Z1")

        assert exc_info.value.is_dependency_violation
        assert exc_info.value.action == "route53:DeleteHostedZone"

    def test_get_resource_record_set_exact_match(self, aws):
        """Test that only an exact name and type match is returned."""
        aws.route53.list_resource_record_sets.return_value = {
            "ResourceRecordSets": [{"Name": "api.example.com.", "Type": "CNAME", "ResourceRecords": []}]
        }

        assert aws.get_resource_record_set("Z1", "api.example.com", "CNAME") is not None
        assert aws.get_resource_record_set("Z1", "other.example.com", "CNAME") is None

    def test_upsert_record(self, aws):
        """Test that upserts go through a single change batch."""
        record = {"Name": "api.example.com", "Type": "CNAME"}

        aws.upsert_resource_record_set("Z1", record)

        change = aws.route53.change_resource_record_sets.call_args.kwargs["ChangeBatch"]["Changes"][0]
        assert change == {"Action": "UPSERT", "ResourceRecordSet": record}

    def test_zone_tags_use_bare_id(self, aws):
        """Test that tag calls strip the /hostedzone/ prefix."""
        aws.add_hosted_zone_tags("/hostedzone/Z1", {"k": "v"})

        assert aws.route53.change_tags_for_resource.call_args.kwargs["ResourceId"] == "Z1"

    def test_hosted_zone_vpcs(self, aws):
        """Test that the VPCs of a zone are read from GetHostedZone."""
        aws.route53.get_hosted_zone.return_value = {
            "HostedZone": {"Id": "/hostedzone/Z1"},
            "VPCs": [{"VPCId": "vpc-1", "VPCRegion": "us-east-1"}],
        }

        assert aws.get_hosted_zone_vpcs("Z1") == [{"VPCId": "vpc-1", "VPCRegion": "us-east-1"}]

    def test_vpc_association(self, aws):
        """Test that authorization and association name the same VPC."""
        aws.create_vpc_association_authorization("Z1", "vpc-x", "eu-west-1")
        aws.associate_vpc_with_hosted_zone("Z1", "vpc-x", "eu-west-1")

        expected = {"HostedZoneId": "Z1", "VPC": {"VPCRegion": "eu-west-1", "VPCId": "vpc-x"}}
        assert aws.route53.create_vpc_association_authorization.call_args.kwargs == expected
        assert aws.route53.associate_vpc_with_hosted_zone.call_args.kwargs == expected


class TestHelpers:
    """Test cases for module helpers."""

    def test_strip_hosted_zone_prefix(self):
        """Test id normalization."""
        assert strip_hosted_zone_prefix("/hostedzone/Z1") == "Z1"
        assert strip_hosted_zone_prefix("Z1") == "Z1"

    def test_tag_filters(self):
        """Test filter construction."""
        assert tag_filters({"b": "2", "a": "1"}, ["k"]) == [
            {"Name": "tag:a", "Values": ["1"]},
            {"Name": "tag:b", "Values": ["2"]},
            {"Name": "tag-key", "Values": ["k"]},
        ]

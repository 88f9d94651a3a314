"""Constants for the VPC Endpoint Operator."""

import os

# API Group
API_GROUP = "vpce.cloud37.dev"
API_VERSION = "v1alpha2"
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

# Resource Kinds
KIND_VPC_ENDPOINT = "VpcEndpoint"
PLURAL_VPC_ENDPOINTS = "vpcendpoints"

# Sibling resource that publishes an endpoint service name
AWS_ENDPOINT_SERVICE_GROUP = "hypershift.openshift.io"
AWS_ENDPOINT_SERVICE_VERSION = "v1beta1"
AWS_ENDPOINT_SERVICE_PLURAL = "awsendpointservices"

# Hosted control plane a zone domain can be read from
HOSTED_CONTROL_PLANE_GROUP = "hypershift.openshift.io"
HOSTED_CONTROL_PLANE_VERSION = "v1beta1"
HOSTED_CONTROL_PLANE_PLURAL = "hostedcontrolplanes"
HOSTED_CONTROL_PLANE_API_PREFIX = "api."
NAMESPACE_FIELD_PATH = ".metadata.namespace"

# Cluster-scoped OpenShift config objects
CONFIG_GROUP = "config.openshift.io"
CONFIG_VERSION = "v1"
INFRASTRUCTURE_PLURAL = "infrastructures"
DNS_PLURAL = "dnses"
CLUSTER_CONFIG_NAME = "cluster"

# Finalizers
FINALIZER = f"{API_GROUP}/finalizer"

# Field Manager
FIELD_MANAGER = "vpce-operator"
CONTROLLER_NAME = "vpce-operator"

# AWS tags
OPERATOR_TAG_KEY = f"{API_GROUP}/managed-by"
OPERATOR_TAG_VALUE = "managed"
CLUSTER_TAG_KEY_PREFIX = "kubernetes.io/cluster/"
CLUSTER_TAG_VALUE = "owned"
NAME_TAG_KEY = "Name"
INTERNAL_ELB_TAG_KEY = "kubernetes.io/role/internal-elb"
SECURITY_GROUP_DESCRIPTION = "Managed by the VPC endpoint operator"
HOSTED_ZONE_COMMENT = "Managed by the VPC endpoint operator"

# Provider limits
MAX_AWS_NAME_LENGTH = 255
RECORD_TTL_SECONDS = 300

# Credential override secret keys
SECRET_ACCESS_KEY_ID = "aws_access_key_id"
SECRET_SECRET_ACCESS_KEY = "aws_secret_access_key"

# Timing
REQUEUE_INTERVAL_SECONDS = float(os.getenv("RECONCILE_INTERVAL_SECONDS", "30"))
DEPENDENCY_VIOLATION_REQUEUE_SECONDS = 30.0
CREATED_REQUEUE_SECONDS = 5.0
BACKOFF_BASE_SECONDS = 1.0
BACKOFF_MAX_SECONDS = 5000.0

# Endpoint lifecycle states
VPCE_STATE_PENDING = "pending"
VPCE_STATE_PENDING_ACCEPTANCE = "pendingAcceptance"
VPCE_STATE_AVAILABLE = "available"
VPCE_STATE_DELETING = "deleting"

# Condition Types
COND_VPC_ENDPOINT_READY = "AWSVpcEndpointReady"
COND_SECURITY_GROUP_READY = "AWSSecurityGroupReady"
COND_ROUTE53_RECORD_READY = "AWSRoute53RecordReady"
COND_EXTERNAL_NAME_SERVICE_READY = "ExternalNameServiceReady"

# Condition Reasons
REASON_NOT_YET_AVAILABLE = "NotYetAvailable"
REASON_BAD_STATE = "BadState"
REASON_DELETED = "Deleted"

# Event Reasons
EVENT_REASON_RECONCILE_FAILED = "ReconcileFailed"
EVENT_REASON_SECURITY_GROUP_CREATED = "SecurityGroupCreated"
EVENT_REASON_VPC_ENDPOINT_CREATED = "VpcEndpointCreated"
EVENT_REASON_HOSTED_ZONE_CREATED = "HostedZoneCreated"
EVENT_REASON_RECORD_UPSERTED = "RecordUpserted"
EVENT_REASON_SERVICE_CREATED = "ExternalNameServiceCreated"
EVENT_REASON_TAGS_REPAIRED = "TagsRepaired"
EVENT_REASON_VPC_ASSOCIATED = "VpcAssociated"
EVENT_REASON_RESOURCE_DELETED = "ResourceDeleted"

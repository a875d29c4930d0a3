"""Annotation keys, labels and defaults shared with kube-ovn."""

BGP_ANNOTATION = "ovn.kubernetes.io/bgp"
LOGICAL_SWITCH_ANNOTATION = "ovn.kubernetes.io/logical_switch"

VPC_NAT_GW_LABEL = "ovn.kubernetes.io/vpc-nat-gw"
VPC_NAT_GW_NAME_LABEL = "ovn.kubernetes.io/vpc-nat-gw-name"

# Subnet / pod announcement policies
POLICY_CLUSTER = "cluster"
POLICY_LOCAL = "local"

KIND_IPTABLES_EIP = "IptablesEIP"
KIND_POD = "Pod"
KIND_SUBNET = "Subnet"
KIND_SERVICE = "Service"

POD_RUNNING = "Running"
POD_SUCCEEDED = "Succeeded"
POD_FAILED = "Failed"

PROTOCOL_IPV4 = "ipv4"
PROTOCOL_IPV6 = "ipv6"

DEFAULT_VPC_NAT_GW_NAMESPACE = "kube-system"
DEFAULT_RECONCILE_INTERVAL = 5.0

#!/usr/bin/env python3
"""Shared resource kinds, labels and defaults."""

from .discovery_mapper import GroupVersionKind

DEFAULT_NAMESPACE = "tink-system"

# Correlation labels
NAME_LABEL = "colony.konstruct.io/name"
JOB_ID_LABEL = "colony.konstruct.io/job-id"
HARDWARE_ID_LABEL = "colony.konstruct.io/hardware-id"

DEPLOYMENT_KIND = GroupVersionKind("apps", "v1", "Deployment")
SECRET_KIND = GroupVersionKind("", "v1", "Secret")
BMC_MACHINE_KIND = GroupVersionKind("bmc.tinkerbell.org", "v1alpha1", "Machine")
BMC_JOB_KIND = GroupVersionKind("bmc.tinkerbell.org", "v1alpha1", "Job")
HARDWARE_KIND = GroupVersionKind("tinkerbell.org", "v1alpha1", "Hardware")
WORKFLOW_KIND = GroupVersionKind("tinkerbell.org", "v1alpha1", "Workflow")

NETWORK_BOOT_DEVICE = "pxe"
NORMAL_BOOT_DEVICE = "disk"
WIPE_DISKS_TEMPLATE = "wipe-disks"

#!/usr/bin/env python3
"""Manifest Templates module: renders the manifests the lifecycle applies."""

import base64
from typing import Any, Dict, Tuple

import yaml

from .constants import (
    BMC_JOB_KIND,
    BMC_MACHINE_KIND,
    DEFAULT_NAMESPACE,
    JOB_ID_LABEL,
    NAME_LABEL,
    NETWORK_BOOT_DEVICE,
    SECRET_KIND,
    WIPE_DISKS_TEMPLATE,
    WORKFLOW_KIND,
)
from .utilities import normalize_host_identifier, random_suffix

IPMI_PORT = 623


def _b64(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


def _dump(document: Dict[str, Any]) -> str:
    return yaml.safe_dump(document, default_flow_style=False, sort_keys=False)


class ManifestTemplates:
    """Builds manifest documents for credentials, power jobs and workflows.

    Job and Workflow renderers draw a fresh correlation suffix on every call
    and return it alongside the text, so the caller polls for exactly the
    object it applied.
    """

    def __init__(self, namespace: str = DEFAULT_NAMESPACE, suffix_factory=random_suffix) -> None:
        """Initialize ManifestTemplates.

        Args:
            namespace: Namespace written into every rendered manifest
            suffix_factory: Zero-argument callable returning a correlation suffix
        """
        self.namespace = namespace
        self.suffix_factory = suffix_factory

    def _metadata(self, name: str, labels: Dict[str, str]) -> Dict[str, Any]:
        return {"name": name, "namespace": self.namespace, "labels": dict(labels)}

    def ipmi_secret(self, host_ip: str, username: str, password: str) -> str:
        """Credential record for a BMC, named by the normalized host identifier."""
        host_id = normalize_host_identifier(host_ip)
        return _dump(
            {
                "apiVersion": SECRET_KIND.api_version,
                "kind": SECRET_KIND.kind,
                "metadata": self._metadata(host_id, {NAME_LABEL: host_id}),
                "type": "kubernetes.io/basic-auth",
                "data": {"username": _b64(username), "password": _b64(password)},
            }
        )

    def bmc_machine(self, host_ip: str, insecure_tls: bool = True) -> str:
        host_id = normalize_host_identifier(host_ip)
        return _dump(
            {
                "apiVersion": BMC_MACHINE_KIND.api_version,
                "kind": BMC_MACHINE_KIND.kind,
                "metadata": self._metadata(host_id, {NAME_LABEL: host_id}),
                "spec": {
                    "connection": {
                        "host": host_ip,
                        "port": IPMI_PORT,
                        "insecureTLS": bool(insecure_tls),
                        "authSecretRef": {"name": host_id, "namespace": self.namespace},
                    }
                },
            }
        )

    def power_cycle_job(
        self, host_id: str, boot_device: str = NETWORK_BOOT_DEVICE, efi_boot: bool = True
    ) -> Tuple[str, str]:
        """Power off, set a one-time boot device, power on.

        Args:
            host_id: Normalized host identifier naming the BMC Machine
            boot_device: "pxe" for network boot, "disk" for normal boot
            efi_boot: Whether the one-time boot uses UEFI

        Returns:
            Tuple of (job_id, manifest text)
        """
        job_id = self.suffix_factory()
        manifest = _dump(
            {
                "apiVersion": BMC_JOB_KIND.api_version,
                "kind": BMC_JOB_KIND.kind,
                "metadata": self._metadata(
                    f"{host_id}-off-{boot_device}-on-{job_id}", {NAME_LABEL: host_id, JOB_ID_LABEL: job_id}
                ),
                "spec": {
                    "machineRef": {"name": host_id, "namespace": self.namespace},
                    "tasks": [
                        {"powerAction": "off"},
                        {"oneTimeBootDeviceAction": {"device": [boot_device], "efiBoot": bool(efi_boot)}},
                        {"powerAction": "on"},
                    ],
                },
            }
        )
        return job_id, manifest

    def _workflow(self, name_prefix: str, template_ref: str, hardware_name: str, mac: str) -> Tuple[str, str]:
        job_id = self.suffix_factory()
        manifest = _dump(
            {
                "apiVersion": WORKFLOW_KIND.api_version,
                "kind": WORKFLOW_KIND.kind,
                "metadata": self._metadata(
                    f"{name_prefix}-{hardware_name}-{job_id}", {NAME_LABEL: hardware_name, JOB_ID_LABEL: job_id}
                ),
                "spec": {
                    "templateRef": template_ref,
                    "hardwareRef": hardware_name,
                    "hardwareMap": {"device_1": mac},
                },
            }
        )
        return job_id, manifest

    def provisioning_workflow(self, template_ref: str, hardware_name: str, mac: str) -> Tuple[str, str]:
        """Workflow running template_ref against the discovered hardware."""
        return self._workflow("provision", template_ref, hardware_name, mac)

    def wipe_disks_workflow(self, hardware_name: str, mac: str) -> Tuple[str, str]:
        return self._workflow(WIPE_DISKS_TEMPLATE, WIPE_DISKS_TEMPLATE, hardware_name, mac)

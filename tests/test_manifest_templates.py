#!/usr/bin/env python3
"""
Pytest tests for rendered lifecycle manifests.
"""

import base64
import os
import sys

import yaml

# Add parent directory to path for module imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from provisioning.constants import JOB_ID_LABEL, NAME_LABEL  # noqa: E402
from provisioning.manifest import decode_manifest  # noqa: E402
from provisioning.manifest_templates import ManifestTemplates  # noqa: E402


def fixed_suffixes(*values):
    remaining = list(values)
    return lambda: remaining.pop(0)


class TestCredentialManifests:
    """Test cases for the IPMI secret and BMC machine."""

    def test_ipmi_secret(self) -> None:
        secret = yaml.safe_load(ManifestTemplates().ipmi_secret("10.0.10.5", "admin", "s3cret"))

        assert secret["kind"] == "Secret"
        assert secret["type"] == "kubernetes.io/basic-auth"
        assert secret["metadata"]["name"] == "10-0-10-5"
        assert secret["metadata"]["labels"] == {NAME_LABEL: "10-0-10-5"}
        assert base64.b64decode(secret["data"]["password"]).decode() == "s3cret"

    def test_bmc_machine_references_secret(self) -> None:
        machine = yaml.safe_load(ManifestTemplates(namespace="bmc").bmc_machine("10.0.10.5", insecure_tls=False))

        connection = machine["spec"]["connection"]
        assert machine["metadata"]["namespace"] == "bmc"
        assert connection["host"] == "10.0.10.5"
        assert connection["port"] == 623
        assert connection["insecureTLS"] is False
        assert connection["authSecretRef"] == {"name": "10-0-10-5", "namespace": "bmc"}

    def test_rendered_text_decodes(self) -> None:
        manifest = decode_manifest(ManifestTemplates().bmc_machine("10.0.10.5"))

        assert manifest.describe() == "Machine tink-system/10-0-10-5"


class TestCorrelatedManifests:
    """Test cases for power jobs and workflows."""

    def test_power_cycle_job(self) -> None:
        templates = ManifestTemplates(suffix_factory=fixed_suffixes("abc123"))

        job_id, text = templates.power_cycle_job("10-0-10-5", "disk", efi_boot=False)
        job = yaml.safe_load(text)

        assert job_id == "abc123"
        assert job["metadata"]["name"] == "10-0-10-5-off-disk-on-abc123"
        assert job["metadata"]["labels"] == {NAME_LABEL: "10-0-10-5", JOB_ID_LABEL: "abc123"}
        assert job["spec"]["machineRef"]["name"] == "10-0-10-5"
        assert job["spec"]["tasks"] == [
            {"powerAction": "off"},
            {"oneTimeBootDeviceAction": {"device": ["disk"], "efiBoot": False}},
            {"powerAction": "on"},
        ]

    def test_each_render_draws_new_suffix(self) -> None:
        templates = ManifestTemplates(suffix_factory=fixed_suffixes("aaa111", "bbb222"))

        first_id, first = templates.power_cycle_job("10-0-10-5")
        second_id, second = templates.power_cycle_job("10-0-10-5")

        assert (first_id, second_id) == ("aaa111", "bbb222")
        assert yaml.safe_load(first)["metadata"]["name"] != yaml.safe_load(second)["metadata"]["name"]

    def test_default_suffix_is_random(self) -> None:
        templates = ManifestTemplates()

        first_id, _ = templates.power_cycle_job("10-0-10-5")
        second_id, _ = templates.power_cycle_job("10-0-10-5")

        assert first_id != second_id

    def test_provisioning_workflow(self) -> None:
        templates = ManifestTemplates(suffix_factory=fixed_suffixes("wf0001"))

        job_id, text = templates.provisioning_workflow("ubuntu-jammy", "hw-0a1b2c", "0c:c4:7a:aa:bb:cc")
        workflow = yaml.safe_load(text)

        assert job_id == "wf0001"
        assert workflow["kind"] == "Workflow"
        assert workflow["metadata"]["name"] == "provision-hw-0a1b2c-wf0001"
        assert workflow["metadata"]["labels"][JOB_ID_LABEL] == "wf0001"
        assert workflow["spec"] == {
            "templateRef": "ubuntu-jammy",
            "hardwareRef": "hw-0a1b2c",
            "hardwareMap": {"device_1": "0c:c4:7a:aa:bb:cc"},
        }

    def test_wipe_disks_workflow(self) -> None:
        templates = ManifestTemplates(suffix_factory=fixed_suffixes("wipe01"))

        _, text = templates.wipe_disks_workflow("hw-0a1b2c", "0c:c4:7a:aa:bb:cc")
        workflow = yaml.safe_load(text)

        assert workflow["spec"]["templateRef"] == "wipe-disks"
        assert workflow["metadata"]["name"] == "wipe-disks-hw-0a1b2c-wipe01"

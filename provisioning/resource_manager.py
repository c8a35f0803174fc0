#!/usr/bin/env python3
"""Resource Manager module for credential, hardware and asset operations."""

import copy
from typing import Any, Dict, List, Optional

from .constants import DEFAULT_NAMESPACE, HARDWARE_ID_LABEL, HARDWARE_KIND, NAME_LABEL, SECRET_KIND
from .exceptions import ProvisioningError
from .utilities import format_label_selector, retry_on_conflict

ASSET_COLUMNS = ["name", "hostname", "ip", "mac", "status"]


class ResourceManager:
    """Typed helpers over the discovery-resolved resource store.

    Covers the reads and in-place mutations the lifecycle needs beyond plain
    manifest application: labelling credential records, resolving a hardware
    record back to its host, clearing network-boot instructions and listing
    hardware assets.
    """

    def __init__(
        self,
        kube_client: Any,
        mapper: Any,
        printer: Optional[Any] = None,
        namespace: str = DEFAULT_NAMESPACE,
    ) -> None:
        """Initialize ResourceManager with required dependencies.

        Args:
            kube_client: KubeClient used for get/replace
            mapper: DiscoveryMapper resolving resource kinds
            printer: PrintManager instance for formatted output
            namespace: Namespace holding credentials and hardware
        """
        self.kube_client = kube_client
        self.mapper = mapper
        self.printer = printer
        self.namespace = namespace

    def get_object(self, kind, name: str, namespace: Optional[str] = None) -> Dict[str, Any]:
        mapping = self.mapper.mapping_for(kind)
        return self.kube_client.get(mapping.object_path(name, namespace or self.namespace))

    def list_objects(self, kind, label_selector: Optional[str] = None, namespace: Optional[str] = None) -> List[Dict[str, Any]]:
        mapping = self.mapper.mapping_for(kind)
        params = {"labelSelector": label_selector} if label_selector else None
        listing = self.kube_client.get(mapping.collection_path(namespace or self.namespace), params)
        return listing.get("items", [])

    def add_label(self, kind, name: str, key: str, value: str, namespace: Optional[str] = None) -> Dict[str, Any]:
        """Add one label to an existing object, retrying on update conflicts.

        Existing labels are left in place; only key is set.

        Returns:
            The updated object as returned by the store
        """
        mapping = self.mapper.mapping_for(kind)
        object_path = mapping.object_path(name, namespace or self.namespace)

        def read_label_replace():
            current = self.kube_client.get(object_path)
            updated = copy.deepcopy(current)
            labels = updated.setdefault("metadata", {}).get("labels") or {}
            labels[key] = value
            updated["metadata"]["labels"] = labels
            return self.kube_client.replace(object_path, updated)

        result = retry_on_conflict(read_label_replace, printer=self.printer)
        if self.printer:
            self.printer.print_success(f"Labelled {kind.kind} {name} with {key}={value}")
        return result

    def label_credentials_with_hardware(self, host_id: str, hardware: Dict[str, Any]) -> Dict[str, Any]:
        """Record the discovered hardware's name on the host's credential secret."""
        return self.add_label(SECRET_KIND, host_id, HARDWARE_ID_LABEL, hardware["metadata"]["name"])

    def find_host_for_hardware(self, hardware_id: str) -> str:
        """Return the host identifier whose credential record carries hardware_id.

        Raises:
            ProvisioningError: If no labelled credential record exists
        """
        secrets = self.list_objects(SECRET_KIND, format_label_selector(HARDWARE_ID_LABEL, hardware_id))
        if not secrets:
            raise ProvisioningError(f"no credential record found for hardware {hardware_id}")

        host_id = (secrets[0].get("metadata", {}).get("labels") or {}).get(NAME_LABEL)
        if not host_id:
            raise ProvisioningError(f"credential record for hardware {hardware_id} has no {NAME_LABEL} label")

        if self.printer:
            self.printer.print_info(f"Found host {host_id} for hardware {hardware_id}")
        return host_id

    def clear_hardware_ipxe(self, hardware_id: str) -> Dict[str, Any]:
        """Remove the network-boot script from a hardware record's first interface."""
        mapping = self.mapper.mapping_for(HARDWARE_KIND)
        object_path = mapping.object_path(hardware_id, self.namespace)

        def read_clear_replace():
            hardware = copy.deepcopy(self.kube_client.get(object_path))
            interfaces = hardware.get("spec", {}).get("interfaces") or []
            if not interfaces:
                raise ProvisioningError(f"hardware {hardware_id} has no interfaces")
            interfaces[0].setdefault("netboot", {})["ipxe"] = {}
            return self.kube_client.replace(object_path, hardware)

        if self.printer:
            self.printer.print_info(f"Removing iPXE script from hardware {hardware_id}")
        return retry_on_conflict(read_clear_replace, printer=self.printer)

    @staticmethod
    def hardware_row(hardware: Dict[str, Any]) -> Dict[str, str]:
        interfaces = hardware.get("spec", {}).get("interfaces") or [{}]
        dhcp = interfaces[0].get("dhcp") or {}
        return {
            "name": hardware.get("metadata", {}).get("name", ""),
            "hostname": dhcp.get("hostname", ""),
            "ip": (dhcp.get("ip") or {}).get("address", ""),
            "mac": dhcp.get("mac", ""),
            "status": (hardware.get("status") or {}).get("state", ""),
        }

    def list_hardware(self) -> List[Dict[str, str]]:
        """Return one asset row per hardware record.

        Raises:
            ProvisioningError: If no hardware is registered
        """
        hardware = self.list_objects(HARDWARE_KIND)
        if not hardware:
            raise ProvisioningError("no hardware found")
        return [self.hardware_row(item) for item in hardware]

#!/usr/bin/env python3
"""Discovery Mapper module: resolves resource kinds to their REST collections."""

import threading
from typing import Any, Dict, NamedTuple, Optional, Tuple

from .exceptions import KubectlCommandError, ResourceMappingError


class GroupVersionKind(NamedTuple):
    """Type identity of a resource. The core group is the empty string."""

    group: str
    version: str
    kind: str

    @classmethod
    def from_api_version(cls, api_version: str, kind: str) -> "GroupVersionKind":
        """Split an apiVersion such as "apps/v1" or "v1" into group and version."""
        if "/" in api_version:
            group, version = api_version.split("/", 1)
        else:
            group, version = "", api_version
        return cls(group, version, kind)

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    def __str__(self) -> str:
        return f"{self.kind}.{self.api_version}"


class ResourceTypeMapping(NamedTuple):
    """Collection endpoint descriptor for one (group, version, kind)."""

    group: str
    version: str
    kind: str
    plural: str
    namespaced: bool

    @property
    def base_path(self) -> str:
        if self.group:
            return f"/apis/{self.group}/{self.version}"
        return f"/api/{self.version}"

    def collection_path(self, namespace: Optional[str] = None) -> str:
        """REST path of the collection; cluster-scoped kinds ignore namespace."""
        if self.namespaced and namespace:
            return f"{self.base_path}/namespaces/{namespace}/{self.plural}"
        return f"{self.base_path}/{self.plural}"

    def object_path(self, name: str, namespace: Optional[str] = None) -> str:
        return f"{self.collection_path(namespace)}/{name}"


class DiscoveryMapper:
    """Resolves GroupVersionKinds through the API's discovery documents.

    The discovery snapshot is taken once, on first use, and reused for the
    lifetime of the mapper. Call refresh() to rebuild it after the target API
    gains or loses resource types.
    """

    def __init__(self, kube_client: Any, printer: Optional[Any] = None) -> None:
        """Initialize DiscoveryMapper.

        Args:
            kube_client: KubeClient used to read the discovery documents
            printer: PrintManager instance for formatted output
        """
        self.kube_client = kube_client
        self.printer = printer
        self._lock = threading.Lock()
        self._mappings: Optional[Dict[Tuple[str, str], Dict[str, ResourceTypeMapping]]] = None
        self._preferred: Dict[str, str] = {}

    @property
    def loaded(self) -> bool:
        return self._mappings is not None

    def _add_resource_list(self, mappings, group: str, version: str, resource_list: Dict[str, Any]) -> None:
        for resource in resource_list.get("resources", []):
            name = resource.get("name", "")
            # Skip subresources such as deployments/status
            if not name or "/" in name:
                continue
            mapping = ResourceTypeMapping(
                group=group,
                version=version,
                kind=resource["kind"],
                plural=name,
                namespaced=bool(resource.get("namespaced", False)),
            )
            mappings.setdefault((group, mapping.kind), {})[version] = mapping

    def _discover(self):
        mappings: Dict[Tuple[str, str], Dict[str, ResourceTypeMapping]] = {}
        preferred: Dict[str, str] = {}

        if self.printer:
            self.printer.print_action("Reading API discovery documents...")

        # Core group: a failure here means the API is unusable
        core_versions = self.kube_client.get("/api").get("versions", [])
        for version in core_versions:
            self._add_resource_list(mappings, "", version, self.kube_client.get(f"/api/{version}"))
        if core_versions:
            preferred[""] = core_versions[0]

        for group in self.kube_client.get("/apis").get("groups", []):
            group_name = group["name"]
            preferred_version = group.get("preferredVersion", {}).get("version")
            if preferred_version:
                preferred[group_name] = preferred_version
            for entry in group.get("versions", []):
                group_version = entry["groupVersion"]
                try:
                    resource_list = self.kube_client.get(f"/apis/{group_version}")
                except KubectlCommandError as e:
                    if self.printer:
                        self.printer.print_warning(f"Skipping API group {group_version}: discovery failed ({e.stderr})")
                    continue
                self._add_resource_list(mappings, group_name, entry["version"], resource_list)

        if self.printer:
            self.printer.print_action(f"Discovered {len(mappings)} resource kinds")
        return mappings, preferred

    def load_mappings(self) -> None:
        """Take the discovery snapshot if it has not been taken yet."""
        with self._lock:
            if self._mappings is None:
                self._mappings, self._preferred = self._discover()

    def refresh(self) -> None:
        """Discard the snapshot and rebuild it."""
        with self._lock:
            self._mappings, self._preferred = self._discover()

    def mapping_for(self, gvk: GroupVersionKind) -> ResourceTypeMapping:
        """Resolve gvk to its collection mapping.

        An empty version resolves to the group's preferred version, falling back
        to any served version.

        Raises:
            ResourceMappingError: If the kind or version is not served by the API
        """
        self.load_mappings()
        versions = self._mappings.get((gvk.group, gvk.kind))
        if not versions:
            raise ResourceMappingError(f"no resource mapping for kind {gvk.kind} in group '{gvk.group or 'core'}'")

        if gvk.version:
            mapping = versions.get(gvk.version)
            if mapping is None:
                served = ", ".join(sorted(versions))
                raise ResourceMappingError(f"{gvk} is not served (available versions: {served})")
            return mapping

        preferred = self._preferred.get(gvk.group)
        if preferred in versions:
            return versions[preferred]
        return next(iter(versions.values()))

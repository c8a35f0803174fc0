#!/usr/bin/env python3
"""Manifest Applier module: create-or-update of arbitrary typed manifests."""

import copy
from typing import Any, Iterable, Iterator, List, Optional, Union

from .constants import DEFAULT_NAMESPACE
from .exceptions import KubectlCommandError, ManifestApplyError, ProvisioningError
from .manifest import DecodedManifest, iter_manifest_documents
from .utilities import retry_on_conflict

CREATED = "created"
UPDATED = "updated"


class ManifestApplier:
    """Applies manifest documents in order against the discovery-resolved API.

    Each document is created; if the store already holds it, the existing
    object's resourceVersion is stamped onto the desired document and the
    object is replaced. The replace is retried on update conflicts with a
    fresh read each attempt. Documents applied before a failure stay applied.
    """

    def __init__(
        self,
        kube_client: Any,
        mapper: Any,
        printer: Optional[Any] = None,
        default_namespace: str = DEFAULT_NAMESPACE,
        conflict_retries: int = 5,
    ) -> None:
        """Initialize ManifestApplier.

        Args:
            kube_client: KubeClient used for create/get/replace
            mapper: DiscoveryMapper resolving each manifest's kind
            printer: PrintManager instance for formatted output
            default_namespace: Namespace given to namespaced manifests that name none
            conflict_retries: Attempts for the read-stamp-replace cycle
        """
        self.kube_client = kube_client
        self.mapper = mapper
        self.printer = printer
        self.default_namespace = default_namespace
        self.conflict_retries = conflict_retries

    def _documents(self, manifests: Iterable[Union[str, DecodedManifest]]) -> Iterator[DecodedManifest]:
        for manifest in manifests:
            if isinstance(manifest, DecodedManifest):
                yield manifest
            else:
                yield from iter_manifest_documents(manifest)

    def _update_existing(self, mapping, namespace: Optional[str], payload: dict) -> dict:
        object_path = mapping.object_path(payload["metadata"]["name"], namespace)

        def read_stamp_replace():
            existing = self.kube_client.get(object_path)
            desired = copy.deepcopy(payload)
            desired["metadata"]["resourceVersion"] = existing["metadata"]["resourceVersion"]
            return self.kube_client.replace(object_path, desired)

        return retry_on_conflict(read_stamp_replace, attempts=self.conflict_retries, printer=self.printer)

    def apply_manifest(self, manifest: DecodedManifest) -> str:
        """Create-or-update a single decoded manifest, returning "created" or "updated"."""
        mapping = self.mapper.mapping_for(manifest.kind)
        payload = copy.deepcopy(manifest.payload)

        namespace = None
        if mapping.namespaced:
            namespace = payload["metadata"].get("namespace") or self.default_namespace
            payload["metadata"]["namespace"] = namespace

        try:
            self.kube_client.create(mapping.collection_path(namespace), payload)
            return CREATED
        except KubectlCommandError as e:
            if not e.is_already_exists:
                raise

        if self.printer:
            self.printer.print_action(f"{manifest.describe()} already exists, updating")
        self._update_existing(mapping, namespace, payload)
        return UPDATED

    def apply_manifests(self, manifests: Iterable[Union[str, DecodedManifest]]) -> List[str]:
        """Apply manifests in order, aborting on the first failure.

        Args:
            manifests: Manifest texts (each may hold several YAML documents)
                or already-decoded manifests

        Returns:
            One outcome per applied document ("created" or "updated")

        Raises:
            ManifestApplyError: Naming the failing document and its cause; documents
                are decoded as they are reached, so those before an undecodable
                one stay applied
        """
        outcomes = []
        documents = self._documents(manifests)
        index = 0
        while True:
            index += 1
            try:
                manifest = next(documents)
            except StopIteration:
                return outcomes
            except ProvisioningError as e:
                raise ManifestApplyError(index, "undecodable document", e) from e
            try:
                outcome = self.apply_manifest(manifest)
            except ProvisioningError as e:
                raise ManifestApplyError(index, manifest.describe(), e) from e
            if self.printer:
                self.printer.print_success(f"{manifest.describe()} {outcome}")
            outcomes.append(outcome)

#!/usr/bin/env python3
"""Decoding of manifest text into typed resource documents."""

from typing import Any, Dict, Iterator, List, NamedTuple

import yaml

from .discovery_mapper import GroupVersionKind
from .exceptions import ManifestDecodeError


class DecodedManifest(NamedTuple):
    """A manifest whose type identity is known; payload stays an opaque mapping."""

    kind: GroupVersionKind
    payload: Dict[str, Any]

    @property
    def name(self) -> str:
        return self.payload["metadata"]["name"]

    @property
    def namespace(self):
        return self.payload["metadata"].get("namespace")

    def describe(self) -> str:
        if self.namespace:
            return f"{self.kind.kind} {self.namespace}/{self.name}"
        return f"{self.kind.kind} {self.name}"


def _from_mapping(document: Any) -> DecodedManifest:
    if not isinstance(document, dict):
        raise ManifestDecodeError(f"manifest must be a mapping, got {type(document).__name__}")

    api_version = document.get("apiVersion")
    kind = document.get("kind")
    if not api_version or not kind:
        raise ManifestDecodeError("manifest is missing apiVersion or kind")

    metadata = document.get("metadata")
    if not isinstance(metadata, dict) or not metadata.get("name"):
        raise ManifestDecodeError(f"{kind} manifest is missing metadata.name")

    return DecodedManifest(GroupVersionKind.from_api_version(str(api_version), str(kind)), document)


def decode_manifest(text: str) -> DecodedManifest:
    """Decode a single YAML (or JSON) document."""
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ManifestDecodeError(f"manifest is not valid YAML: {e}") from e
    return _from_mapping(document)


def iter_manifest_documents(text: str) -> Iterator[DecodedManifest]:
    """Decode the non-empty documents of a multi-document YAML stream one at a time.

    A document that fails to decode raises only once the documents before it
    have been yielded.
    """
    documents = yaml.safe_load_all(text)
    while True:
        try:
            document = next(documents)
        except StopIteration:
            return
        except yaml.YAMLError as e:
            raise ManifestDecodeError(f"manifest stream is not valid YAML: {e}") from e
        if document is not None:
            yield _from_mapping(document)


def decode_manifest_documents(text: str) -> List[DecodedManifest]:
    """Decode every non-empty document of a multi-document YAML stream."""
    return list(iter_manifest_documents(text))

#!/usr/bin/env python3
"""
Shared pytest configuration and fixtures for all tests.
"""

import copy
import itertools
import os
import sys
import threading
from typing import Any, Dict, Optional
from unittest.mock import Mock

import pytest

# Add the parent directory to Python path so we can import provisioning
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from provisioning.cancellation import CancellationToken  # noqa: E402
from provisioning.configuration_manager import ProvisioningConfig  # noqa: E402
from provisioning.discovery_mapper import DiscoveryMapper  # noqa: E402
from provisioning.exceptions import KubectlCommandError  # noqa: E402
from provisioning.hardware_orchestrator import HardwareLifecycleOrchestrator  # noqa: E402
from provisioning.manifest_applier import ManifestApplier  # noqa: E402
from provisioning.manifest_templates import ManifestTemplates  # noqa: E402
from provisioning.readiness_poller import ReadinessPoller  # noqa: E402
from provisioning.resource_manager import ResourceManager  # noqa: E402
from provisioning.resource_watch import DiscoveryChannel, ResourceWatch  # noqa: E402
from provisioning.utilities import format_runtime  # noqa: E402

NAMESPACE = "tink-system"

CORE = "/api/v1"
APPS = "/apis/apps/v1"
BMC = "/apis/bmc.tinkerbell.org/v1alpha1"
TINK = "/apis/tinkerbell.org/v1alpha1"

# (group, version, kind, plural, namespaced)
SERVED_RESOURCES = [
    ("", "v1", "Secret", "secrets", True),
    ("", "v1", "Namespace", "namespaces", False),
    ("apps", "v1", "Deployment", "deployments", True),
    ("bmc.tinkerbell.org", "v1alpha1", "Machine", "machines", True),
    ("bmc.tinkerbell.org", "v1alpha1", "Job", "jobs", True),
    ("tinkerbell.org", "v1alpha1", "Hardware", "hardware", True),
    ("tinkerbell.org", "v1alpha1", "Workflow", "workflows", True),
]


def server_error(reason: str, message: str, verb: str = "get") -> KubectlCommandError:
    """Build the error kubectl reports for an API server rejection."""
    return KubectlCommandError(["kubectl", verb, "--raw"], f"Error from server ({reason}): {message}", 1)


def connection_refused() -> KubectlCommandError:
    return KubectlCommandError(
        ["kubectl", "get", "--raw"],
        "The connection to the server 127.0.0.1:6443 was refused - did you specify the right host or port?",
        1,
    )


def _matches_selector(obj: Dict[str, Any], selector: Optional[str]) -> bool:
    if not selector:
        return True
    labels = obj.get("metadata", {}).get("labels") or {}
    for term in selector.split(","):
        key, _, value = term.partition("=")
        if labels.get(key.strip()) != value.strip():
            return False
    return True


class FakeWatchStream:
    """Replays the fake store's event log from a resource version, blocking for new events."""

    def __init__(self, store, base, namespace, plural, resource_version, selector):
        self.store = store
        self.key = (base, plural)
        self.namespace = namespace
        self.start_rv = int(resource_version or 0)
        self.selector = selector
        self.closed = False
        self._cursor = 0

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
        return False

    def close(self):
        with self.store.condition:
            self.closed = True
            self.store.condition.notify_all()

    def __iter__(self):
        while True:
            with self.store.condition:
                while not self.closed and self._cursor >= len(self.store.events):
                    self.store.condition.wait(0.05)
                if self.closed:
                    return
                rv, key, namespace, event = self.store.events[self._cursor]
                self._cursor += 1
            if rv <= self.start_rv or key != self.key:
                continue
            if self.namespace and namespace and namespace != self.namespace:
                continue
            if event.get("type") != "ERROR" and not _matches_selector(event.get("object", {}), self.selector):
                continue
            yield copy.deepcopy(event)


class FakeKubeClient:
    """In-memory resource store speaking the KubeClient interface.

    Serves discovery documents for SERVED_RESOURCES, label-selected lists,
    create with AlreadyExists, replace with resourceVersion conflicts (status
    kept from the stored object), and
    watch streams replayed from an append-only event log.

    Hooks:
        create_reactors[plural](store, obj): runs after an object is created
        get_reactors[plural](store, obj): runs on the stored object before every read
        fail_next(method, error): queue an error for the next call of method (optionally on a matching path)
    """

    def __init__(self):
        self.condition = threading.Condition()
        self.objects: Dict[tuple, Dict[str, Any]] = {}
        self.events = []
        self.calls = []
        self.create_reactors = {}
        self.get_reactors = {}
        self.broken_group_versions = set()
        self._failures = {"get": [], "create": [], "replace": [], "watch": []}
        self._rv = itertools.count(100)
        self._uid = itertools.count(1)

    # -- test helpers -------------------------------------------------------

    def fail_next(self, method, error, times=1, path_fragment=""):
        self._failures[method].extend([(error, path_fragment)] * times)

    def _maybe_fail(self, method, path):
        with self.condition:
            for index, (error, fragment) in enumerate(self._failures[method]):
                if fragment in path:
                    del self._failures[method][index]
                    raise error

    def _store(self, base, namespace, plural, obj, event_type):
        with self.condition:
            rv = next(self._rv)
            obj["metadata"]["resourceVersion"] = str(rv)
            self.objects[(base, namespace, plural, obj["metadata"]["name"])] = obj
            self.events.append((rv, (base, plural), namespace, {"type": event_type, "object": copy.deepcopy(obj)}))
            self.condition.notify_all()
        return obj

    def add_object(self, base, plural, obj, namespace=NAMESPACE):
        """Create an object as a controller would, emitting an ADDED event."""
        obj = copy.deepcopy(obj)
        metadata = obj.setdefault("metadata", {})
        metadata.setdefault("namespace", namespace)
        metadata.setdefault("uid", f"uid-{next(self._uid)}")
        return self._store(base, namespace, plural, obj, "ADDED")

    def inject_event(self, base, plural, event, namespace=NAMESPACE):
        with self.condition:
            rv = next(self._rv)
            self.events.append((rv, (base, plural), namespace, event))
            self.condition.notify_all()

    def _sorted_items(self):
        return sorted(self.objects.items(), key=lambda item: tuple(str(part) for part in item[0]))

    def stored(self, base, plural, name, namespace=NAMESPACE):
        return self.objects.get((base, namespace, plural, name))

    def list_stored(self, base, plural, namespace=NAMESPACE):
        return [
            obj
            for (obj_base, obj_ns, obj_plural, _), obj in self._sorted_items()
            if obj_base == base and obj_plural == plural and obj_ns == namespace
        ]

    def count_calls(self, method, path_fragment=""):
        return sum(1 for call_method, path in self.calls if call_method == method and path_fragment in path)

    # -- path handling ------------------------------------------------------

    @staticmethod
    def _parse(path):
        path = path.split("?", 1)[0]
        segments = [segment for segment in path.strip("/").split("/") if segment]
        if segments[0] == "api":
            if len(segments) == 1:
                return "api-root", None, None, None
            base, rest = f"/api/{segments[1]}", segments[2:]
        elif segments[0] == "apis":
            if len(segments) == 1:
                return "apis-root", None, None, None
            base, rest = f"/apis/{segments[1]}/{segments[2]}", segments[3:]
        else:
            return "other", path, None, None

        namespace = None
        if len(rest) >= 3 and rest[0] == "namespaces":
            namespace, rest = rest[1], rest[2:]
        if not rest:
            return "discovery", base, None, None
        plural = rest[0]
        name = rest[1] if len(rest) > 1 else None
        return base, namespace, plural, name

    def _discovery(self, kind, base):
        if kind == "api-root":
            return {"kind": "APIVersions", "versions": ["v1"]}
        if kind == "apis-root":
            groups = {}
            for group, version, _, _, _ in SERVED_RESOURCES:
                if group:
                    groups.setdefault(group, version)
            return {
                "kind": "APIGroupList",
                "groups": [
                    {
                        "name": group,
                        "versions": [{"groupVersion": f"{group}/{version}", "version": version}],
                        "preferredVersion": {"groupVersion": f"{group}/{version}", "version": version},
                    }
                    for group, version in groups.items()
                ]
                + [
                    {
                        "name": group_version.split("/")[0],
                        "versions": [{"groupVersion": group_version, "version": group_version.split("/")[1]}],
                    }
                    for group_version in sorted(self.broken_group_versions)
                ],
            }
        if base.startswith("/apis/") and base[len("/apis/"):] in self.broken_group_versions:
            raise server_error("ServiceUnavailable", "the server is currently unable to handle the request")
        resources = []
        for group, version, kind_name, plural, namespaced in SERVED_RESOURCES:
            resource_base = f"/apis/{group}/{version}" if group else f"/api/{version}"
            if resource_base == base:
                resources.append({"name": plural, "kind": kind_name, "namespaced": namespaced})
                resources.append({"name": f"{plural}/status", "kind": kind_name, "namespaced": namespaced})
        return {"kind": "APIResourceList", "groupVersion": base, "resources": resources}

    # -- KubeClient interface -----------------------------------------------

    def get(self, path, params=None):
        self.calls.append(("get", path))
        self._maybe_fail("get", path)
        base, namespace, plural, name = self._parse(path)
        if base in ("api-root", "apis-root"):
            return self._discovery(base, None)
        if base == "other":
            return {"major": "1", "minor": "30", "gitVersion": "v1.30.0"}
        if plural is None:
            return self._discovery("resources", namespace or base)

        with self.condition:
            if name is None:
                selector = (params or {}).get("labelSelector")
                items = []
                for (obj_base, obj_ns, obj_plural, _), obj in self._sorted_items():
                    if obj_base != base or obj_plural != plural:
                        continue
                    if namespace and obj_ns != namespace:
                        continue
                    if plural in self.get_reactors:
                        self.get_reactors[plural](self, obj)
                    if _matches_selector(obj, selector):
                        items.append(copy.deepcopy(obj))
                return {"kind": "List", "metadata": {"resourceVersion": str(next(self._rv))}, "items": items}

            obj = self.objects.get((base, namespace, plural, name))
            if obj is None:
                raise server_error("NotFound", f'{plural} "{name}" not found')
            if plural in self.get_reactors:
                self.get_reactors[plural](self, obj)
            return copy.deepcopy(obj)

    def create(self, path, body):
        self.calls.append(("create", path))
        self._maybe_fail("create", path)
        base, namespace, plural, _ = self._parse(path)
        name = body["metadata"]["name"]
        with self.condition:
            if (base, namespace, plural, name) in self.objects:
                raise server_error("AlreadyExists", f'{plural} "{name}" already exists', "create")
            obj = copy.deepcopy(body)
            obj["metadata"]["uid"] = f"uid-{next(self._uid)}"
            if namespace:
                obj["metadata"]["namespace"] = namespace
            self._store(base, namespace, plural, obj, "ADDED")
        if plural in self.create_reactors:
            self.create_reactors[plural](self, obj)
        return copy.deepcopy(obj)

    def replace(self, path, body):
        self.calls.append(("replace", path))
        self._maybe_fail("replace", path)
        base, namespace, plural, name = self._parse(path)
        with self.condition:
            current = self.objects.get((base, namespace, plural, name))
            if current is None:
                raise server_error("NotFound", f'{plural} "{name}" not found', "replace")
            if body["metadata"].get("resourceVersion") != current["metadata"]["resourceVersion"]:
                raise server_error(
                    "Conflict",
                    f'Operation cannot be fulfilled on {plural} "{name}": the object has been modified; '
                    "please apply your changes to the latest version and try again",
                    "replace",
                )
            obj = copy.deepcopy(body)
            obj["metadata"]["uid"] = current["metadata"].get("uid")
            # Status is a subresource; replacing the main resource leaves it alone
            if "status" in current:
                obj["status"] = copy.deepcopy(current["status"])
            return copy.deepcopy(self._store(base, namespace, plural, obj, "MODIFIED"))

    def watch(self, path, params=None):
        self.calls.append(("watch", path))
        self._maybe_fail("watch", path)
        base, namespace, plural, _ = self._parse(path)
        params = params or {}
        return FakeWatchStream(
            self, base, namespace, plural, params.get("resourceVersion"), params.get("labelSelector")
        )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def mock_printer() -> Mock:
    """Mock printer for testing output operations.

    Returns:
        Mock: Mock printer instance with all required methods.
    """
    printer = Mock()
    printer.print_header = Mock()
    printer.print_info = Mock()
    printer.print_action = Mock()
    printer.print_success = Mock()
    printer.print_error = Mock()
    printer.print_warning = Mock()
    printer.print_step = Mock()
    printer.print_table = Mock()
    return printer


@pytest.fixture
def fake_kube():
    return FakeKubeClient()


@pytest.fixture
def mapper(fake_kube, mock_printer):
    return DiscoveryMapper(fake_kube, printer=mock_printer)


@pytest.fixture
def applier(fake_kube, mapper, mock_printer):
    return ManifestApplier(fake_kube, mapper, printer=mock_printer)


@pytest.fixture
def poller(fake_kube, mapper, mock_printer):
    return ReadinessPoller(fake_kube, mapper, printer=mock_printer, appear_interval=0.01, ready_interval=0.01)


@pytest.fixture
def resource_manager(fake_kube, mapper, mock_printer):
    return ResourceManager(fake_kube, mapper, printer=mock_printer)


@pytest.fixture
def token():
    return CancellationToken()


@pytest.fixture
def fast_config():
    """Config with timeouts short enough for tests that exercise failure paths."""
    return ProvisioningConfig(
        kubeconfig=None,
        timeouts={"machine": 2, "job": 2, "workflow": 2, "discovery": 2},
        default_template="ubuntu-jammy",
    )


@pytest.fixture
def suffixes():
    """Deterministic correlation suffixes: job001, job002, ..."""
    counter = itertools.count(1)
    return lambda: f"job{next(counter):03d}"


@pytest.fixture
def orchestrator_factory(fake_kube, mapper, applier, poller, resource_manager, mock_printer, suffixes):
    """Build an orchestrator wired to the fake store."""

    def _build(config):
        watch_class = lambda **kwargs: ResourceWatch(reconnect_delay=0.01, **kwargs)  # noqa: E731
        return HardwareLifecycleOrchestrator(
            printer=mock_printer,
            kube_client=fake_kube,
            mapper=mapper,
            config=config,
            format_runtime=format_runtime,
            applier=applier,
            poller=poller,
            resource_manager=resource_manager,
            templates=ManifestTemplates(suffix_factory=suffixes),
            ResourceWatch=watch_class,
            DiscoveryChannel=DiscoveryChannel,
        )

    return _build


@pytest.fixture
def hardware_factory():
    """Factory for Tinkerbell Hardware records."""

    def _create(
        name="hw-0a1b2c", mac="0c:c4:7a:aa:bb:cc", ip="10.0.10.50", hostname="node-1", state="", host_id="10-0-10-5"
    ):
        return {
            "apiVersion": "tinkerbell.org/v1alpha1",
            "kind": "Hardware",
            "metadata": {"name": name, "namespace": NAMESPACE},
            "spec": {
                "bmcRef": {"apiGroup": "bmc.tinkerbell.org", "kind": "Machine", "name": host_id},
                "interfaces": [
                    {
                        "dhcp": {"mac": mac, "hostname": hostname, "ip": {"address": ip}},
                        "netboot": {"allowPXE": True, "ipxe": {"url": "http://10.0.10.2/auto.ipxe"}},
                    }
                ]
            },
            "status": {"state": state},
        }

    return _create


@pytest.fixture
def secret_factory():
    """Factory for IPMI credential secrets as stored by add-ipmi."""

    def _create(host_id="10-0-10-5", labels=None):
        return {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {
                "name": host_id,
                "namespace": NAMESPACE,
                "labels": dict({"colony.konstruct.io/name": host_id}, **(labels or {})),
            },
            "type": "kubernetes.io/basic-auth",
            "data": {"username": "YWRtaW4=", "password": "c2VjcmV0"},
        }

    return _create

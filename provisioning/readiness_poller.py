#!/usr/bin/env python3
"""Readiness Poller module: bounded two-phase waits on resource state."""

import time
from typing import Any, Callable, Dict, NamedTuple, Optional

from .constants import (
    BMC_JOB_KIND,
    BMC_MACHINE_KIND,
    DEFAULT_NAMESPACE,
    DEPLOYMENT_KIND,
    JOB_ID_LABEL,
    NAME_LABEL,
    WORKFLOW_KIND,
)
from .discovery_mapper import GroupVersionKind
from .exceptions import ConfigurationError, KubectlCommandError, OperationCancelledError, PollTimeoutError, TerminalFailureError
from .utilities import format_label_selector

APPEAR = "appear"
BECOME_READY = "become ready"


def is_transient(error: BaseException) -> bool:
    """True for connectivity failures that should read as "not yet" while polling."""
    if isinstance(error, (ConnectionError, TimeoutError)):
        return True
    if isinstance(error, KubectlCommandError):
        return error.is_transient
    return False


def poll_until(
    check: Callable[[], Any],
    interval: float,
    timeout: float,
    token,
    description: str,
    phase: str,
) -> Any:
    """Call check until it returns a truthy value.

    The first check runs immediately. Between checks the caller's cancellation
    token is waited on, so cancel() interrupts the sleep.

    Args:
        check: Zero-argument callable; a falsy result means "not yet", an
            exception aborts the wait
        interval: Seconds between checks
        timeout: Seconds before giving up
        token: CancellationToken bound to the wait
        description: Human readable name of the awaited resource
        phase: "appear" or "become ready", used in the timeout error

    Returns:
        The first truthy value returned by check

    Raises:
        PollTimeoutError: If timeout elapses first
        OperationCancelledError: If token is cancelled first
    """
    deadline = time.monotonic() + timeout
    while True:
        token.raise_if_cancelled(f"waiting for {description} to {phase}")
        result = check()
        if result:
            return result

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise PollTimeoutError(description, phase, timeout)
        if token.wait(min(interval, remaining)):
            raise OperationCancelledError(f"waiting for {description} to {phase} cancelled: {token.reason}")


class ResourceLocator(NamedTuple):
    """Where to look for the awaited resource."""

    kind: GroupVersionKind
    namespace: Optional[str]
    label_selector: str
    description: str


def _last_condition(obj: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    conditions = (obj.get("status") or {}).get("conditions") or []
    return conditions[-1] if conditions else None


def _condition_is(condition: Optional[Dict[str, Any]], condition_type: str) -> bool:
    if condition is None:
        return False
    return (
        str(condition.get("type", "")).lower() == condition_type.lower()
        and str(condition.get("status", "")).lower() == "true"
    )


def _object_name(obj: Dict[str, Any]) -> str:
    return obj.get("metadata", {}).get("name", "<unnamed>")


def always_found(obj: Dict[str, Any]) -> bool:
    return True


def deployment_found(obj: Dict[str, Any]) -> bool:
    return (obj.get("status") or {}).get("replicas", 0) > 0


def deployment_ready(obj: Dict[str, Any]) -> bool:
    desired = (obj.get("spec") or {}).get("replicas")
    if desired is None:
        raise ConfigurationError(f"deployment {_object_name(obj)} has no spec.replicas")
    return (obj.get("status") or {}).get("readyReplicas", 0) == desired


def machine_ready(obj: Dict[str, Any]) -> bool:
    return _condition_is(_last_condition(obj), "Contactable")


def job_ready(obj: Dict[str, Any]) -> bool:
    condition = _last_condition(obj)
    if _condition_is(condition, "Failed"):
        message = condition.get("message") or "no message"
        raise TerminalFailureError(f"job {_object_name(obj)} failed: {message}")
    return _condition_is(condition, "Completed")


def _workflow_state(obj: Dict[str, Any]) -> str:
    state = str((obj.get("status") or {}).get("state") or "").upper()
    if state.startswith("STATE_"):
        state = state[len("STATE_"):]
    return state


def workflow_ready(obj: Dict[str, Any]) -> bool:
    status = obj.get("status") or {}
    state = _workflow_state(obj)
    if state in ("FAILED", "TIMEOUT"):
        namespace = obj.get("metadata", {}).get("namespace", "")
        raise TerminalFailureError(
            f"workflow {_object_name(obj)} in namespace {namespace} ended in state {state}"
        )
    if not status.get("tasks"):
        return False
    return state == "SUCCESS"


class ReadinessPoller:
    """Waits for resources to appear and then satisfy a readiness predicate.

    The appearance phase lists by label selector until an item passes the
    "found" predicate. The readiness phase re-reads that item by name until
    the "ready" predicate holds. Transient connectivity errors count as
    "not yet" in both phases; anything else aborts the wait immediately.
    """

    def __init__(
        self,
        kube_client: Any,
        mapper: Any,
        printer: Optional[Any] = None,
        appear_interval: float = 15,
        ready_interval: float = 5,
        default_namespace: str = DEFAULT_NAMESPACE,
    ) -> None:
        self.kube_client = kube_client
        self.mapper = mapper
        self.printer = printer
        self.appear_interval = appear_interval
        self.ready_interval = ready_interval
        self.default_namespace = default_namespace

    def _tolerating_transient(self, read: Callable[[], Any], description: str) -> Any:
        try:
            return read()
        except Exception as e:
            if not is_transient(e):
                raise
            if self.printer:
                self.printer.print_warning(f"Connection error while checking {description}, retrying: {e}")
            return None

    def wait_for(
        self,
        locator: ResourceLocator,
        found: Callable[[Dict[str, Any]], bool],
        ready: Callable[[Dict[str, Any]], bool],
        appear_timeout: float,
        ready_timeout: float,
        token,
    ) -> Dict[str, Any]:
        """Block until the located resource exists and is ready.

        Returns:
            The resource as last read, once ready

        Raises:
            PollTimeoutError: Naming the resource and the phase that timed out
            OperationCancelledError: If token is cancelled
            TerminalFailureError: If the ready predicate reports a terminal failure
        """
        mapping = self.mapper.mapping_for(locator.kind)
        namespace = locator.namespace or self.default_namespace
        description = locator.description

        def appeared():
            listing = self._tolerating_transient(
                lambda: self.kube_client.get(
                    mapping.collection_path(namespace), {"labelSelector": locator.label_selector}
                ),
                description,
            )
            if listing is None:
                return None
            for item in listing.get("items", []):
                if found(item):
                    return _object_name(item)
            return None

        if self.printer:
            self.printer.print_info(f"Waiting up to {appear_timeout}s for {description} to appear...")
        name = poll_until(appeared, self.appear_interval, appear_timeout, token, description, APPEAR)

        def became_ready():
            obj = self._tolerating_transient(
                lambda: self.kube_client.get(mapping.object_path(name, namespace)), description
            )
            if obj is not None and ready(obj):
                return obj
            return None

        if self.printer:
            self.printer.print_info(f"Waiting up to {ready_timeout}s for {description} ({name}) to become ready...")
        obj = poll_until(became_ready, self.ready_interval, ready_timeout, token, description, BECOME_READY)
        if self.printer:
            self.printer.print_success(f"{description} ({name}) is ready")
        return obj

    def wait_for_deployments(self, targets, token, read_timeout: float = 50, wait_timeout: float = 120):
        """Wait for each (label_selector, namespace) target's deployment to be ready."""
        ready_deployments = []
        for label_selector, namespace in targets:
            locator = ResourceLocator(
                DEPLOYMENT_KIND, namespace, label_selector, f"deployment with label {label_selector}"
            )
            ready_deployments.append(
                self.wait_for(locator, deployment_found, deployment_ready, read_timeout, wait_timeout, token)
            )
        return ready_deployments

    def wait_for_machine(self, host_id: str, token, timeout: float = 90, namespace: Optional[str] = None):
        """Wait for the BMC Machine of host_id to be contactable."""
        selector = format_label_selector(NAME_LABEL, host_id)
        locator = ResourceLocator(BMC_MACHINE_KIND, namespace, selector, f"machine {host_id}")
        return self.wait_for(locator, always_found, machine_ready, timeout, timeout, token)

    def wait_for_job(self, job_id: str, token, timeout: float = 300, namespace: Optional[str] = None):
        """Wait for the power Job labelled with job_id to complete."""
        selector = format_label_selector(JOB_ID_LABEL, job_id)
        locator = ResourceLocator(BMC_JOB_KIND, namespace, selector, f"job {job_id}")
        return self.wait_for(locator, always_found, job_ready, timeout, timeout, token)

    def wait_for_workflow(self, job_id: str, token, timeout: float = 300, namespace: Optional[str] = None):
        """Wait for the Workflow labelled with job_id to succeed."""
        selector = format_label_selector(JOB_ID_LABEL, job_id)
        locator = ResourceLocator(WORKFLOW_KIND, namespace, selector, f"workflow {job_id}")
        return self.wait_for(locator, always_found, workflow_ready, timeout, timeout, token)

    def wait_for_api_healthy(self, token, timeout: float = 120, interval: float = 5):
        """Wait until the API server answers /version."""

        def healthy():
            try:
                return self.kube_client.get("/version") or {"reachable": True}
            except KubectlCommandError as e:
                if e.is_transient or e.reason in ("ServiceUnavailable", "Timeout"):
                    return None
                raise
            except (ConnectionError, TimeoutError):
                return None

        return poll_until(healthy, interval, timeout, token, "API server", "become healthy")

#!/usr/bin/env python3
"""Resource Watch module: creation-event subscription with a rendezvous channel."""

import threading
import time
from typing import Any, Callable, Dict, Optional

from .exceptions import DiscoveryError, OperationCancelledError, ProvisioningError
from .readiness_poller import is_transient

GONE = 410


class DiscoveryChannel:
    """Single-slot rendezvous between the watch thread and one waiting caller.

    The first outcome written wins, whether it is a delivered object or an
    error; later writes are dropped. wait() is meant for exactly one consumer.
    """

    def __init__(self) -> None:
        self._condition = threading.Condition(threading.RLock())
        self._settled = False
        self._value: Optional[Dict[str, Any]] = None
        self._error: Optional[BaseException] = None

    @property
    def settled(self) -> bool:
        return self._settled

    def _settle(self, value, error) -> bool:
        with self._condition:
            if self._settled:
                return False
            self._settled = True
            self._value = value
            self._error = error
            self._condition.notify_all()
            return True

    def deliver(self, obj: Dict[str, Any]) -> bool:
        """Offer a discovered object; returns False if an outcome was already written."""
        return self._settle(obj, None)

    def fail(self, error: BaseException) -> bool:
        """Offer a watch failure; returns False if an outcome was already written."""
        return self._settle(None, error)

    def interrupt(self) -> None:
        """Wake the waiter so it re-checks its cancellation token."""
        with self._condition:
            self._condition.notify_all()

    def wait(self, token, timeout: float) -> Dict[str, Any]:
        """Block until an outcome is written, the token is cancelled, or timeout elapses.

        Returns:
            The delivered object

        Raises:
            DiscoveryError: On a watch failure or when timeout elapses
            OperationCancelledError: If token is cancelled first
        """
        token.on_cancel(self.interrupt)
        deadline = time.monotonic() + timeout
        try:
            with self._condition:
                while not self._settled:
                    if token.cancelled:
                        raise OperationCancelledError(f"waiting for hardware discovery cancelled: {token.reason}")
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise DiscoveryError(f"no hardware discovered within {timeout}s")
                    self._condition.wait(remaining)

                if self._error is not None:
                    raise DiscoveryError(f"hardware watch failed: {self._error}") from self._error
                return self._value
        finally:
            token.remove_callback(self.interrupt)


class ResourceWatch:
    """Observes creation events of one resource kind on a background thread.

    The collection is listed first and watched from the listed resource
    version, so only objects created after start() produce deliveries. For
    every matching ADDED event, on_created runs (to label the credential
    record) and the object is offered to the channel.
    """

    def __init__(
        self,
        kube_client: Any,
        mapper: Any,
        kind,
        namespace: Optional[str],
        channel: DiscoveryChannel,
        on_created: Optional[Callable[[Dict[str, Any]], None]] = None,
        label_selector: Optional[str] = None,
        matches: Optional[Callable[[Dict[str, Any]], bool]] = None,
        event_source: Optional[Callable[[str], Any]] = None,
        printer: Optional[Any] = None,
        reconnect_delay: float = 5,
    ) -> None:
        """Initialize ResourceWatch.

        Args:
            kube_client: KubeClient used to list and watch
            mapper: DiscoveryMapper resolving kind
            kind: GroupVersionKind to observe
            namespace: Namespace to observe
            channel: DiscoveryChannel receiving the first matching object or an error
            on_created: Callback run for each matching creation before delivery
            label_selector: Optional selector narrowing the observed objects
            matches: Predicate choosing which created objects are of interest
            event_source: Replacement for kube_client.watch, called with the
                resource version to resume from; must return a context manager
                that iterates watch events
            printer: PrintManager instance for formatted output
            reconnect_delay: Seconds to wait before reconnecting after a transient failure
        """
        self.kube_client = kube_client
        self.mapper = mapper
        self.kind = kind
        self.namespace = namespace
        self.channel = channel
        self.on_created = on_created
        self.label_selector = label_selector
        self.matches = matches or (lambda obj: True)
        self.event_source = event_source
        self.printer = printer
        self.reconnect_delay = reconnect_delay

        self._lock = threading.Lock()
        self._stopped = threading.Event()
        self._stream = None
        self._thread: Optional[threading.Thread] = None
        self._resource_version: Optional[str] = None
        self._known = set()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _selector_params(self) -> Dict[str, str]:
        return {"labelSelector": self.label_selector} if self.label_selector else {}

    @staticmethod
    def _name(obj: Dict[str, Any]) -> Optional[str]:
        return obj.get("metadata", {}).get("name")

    def _list(self, initial: bool = False) -> str:
        """List the collection and return its resource version.

        The initial list records what already exists. A relist after an
        expired watch reports matching objects created in the gap.
        """
        mapping = self.mapper.mapping_for(self.kind)
        listing = self.kube_client.get(mapping.collection_path(self.namespace), self._selector_params())
        items = listing.get("items", [])
        if initial:
            self._known = {self._name(item) for item in items}
        else:
            for item in items:
                if self._name(item) not in self._known and self.matches(item):
                    self._on_added(item)
        return listing.get("metadata", {}).get("resourceVersion", "")

    def _open(self, resource_version: str):
        if self.event_source is not None:
            return self.event_source(resource_version)
        mapping = self.mapper.mapping_for(self.kind)
        params = self._selector_params()
        params.update({"resourceVersion": resource_version, "allowWatchBookmarks": "true"})
        return self.kube_client.watch(mapping.collection_path(self.namespace), params)

    def start(self, token) -> None:
        """Take the initial list and start watching on a daemon thread.

        Returns once the initial list is taken, so anything created afterwards
        is observed. Cancelling token stops the watch.
        """
        self._resource_version = self._list(initial=True)
        self._thread = threading.Thread(target=self._run, name=f"watch-{self.kind.kind.lower()}", daemon=True)
        self._thread.start()
        token.on_cancel(self.stop)
        if self.printer:
            self.printer.print_action(
                f"Watching {self.kind.kind} in {self.namespace} from resourceVersion {self._resource_version}"
            )

    def stop(self, join_timeout: float = 5) -> None:
        """End the watch loop and close the active stream."""
        self._stopped.set()
        with self._lock:
            stream = self._stream
        if stream is not None:
            stream.close()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(join_timeout)

    def _run(self) -> None:
        while not self._stopped.is_set():
            try:
                if self._resource_version is None:
                    self._resource_version = self._list()
                self._consume_stream()
            except Exception as e:
                if self._stopped.is_set():
                    return
                if is_transient(e):
                    if self.printer:
                        self.printer.print_warning(f"{self.kind.kind} watch interrupted, reconnecting: {e}")
                    self._stopped.wait(self.reconnect_delay)
                    continue
                if self.printer:
                    self.printer.print_error(f"{self.kind.kind} watch failed: {e}")
                self.channel.fail(e)
                return

    def _consume_stream(self) -> None:
        stream = self._open(self._resource_version)
        with self._lock:
            if self._stopped.is_set():
                stream.close()
                return
            self._stream = stream
        try:
            with stream as events:
                for event in events:
                    if self._stopped.is_set():
                        return
                    if not self._handle_event(event):
                        return
        finally:
            with self._lock:
                self._stream = None

    def _handle_event(self, event: Dict[str, Any]) -> bool:
        """Process one watch event; returns False when the stream must be abandoned for a relist."""
        event_type = event.get("type")
        obj = event.get("object") or {}

        if event_type == "ERROR":
            if obj.get("code") == GONE:
                if self.printer:
                    self.printer.print_action(f"{self.kind.kind} watch expired, relisting")
                self._resource_version = None
                return False
            raise ProvisioningError(f"{self.kind.kind} watch error: {obj.get('message', obj)}")

        if event_type == "ADDED" and self._name(obj) not in self._known and self.matches(obj):
            self._on_added(obj)

        # Only advance past an event once it is handled, so a reconnect replays it
        resource_version = obj.get("metadata", {}).get("resourceVersion")
        if resource_version:
            self._resource_version = resource_version
        return True

    def _on_added(self, obj: Dict[str, Any]) -> None:
        name = self._name(obj)
        if self.printer:
            uid = obj.get("metadata", {}).get("uid", "unknown")
            self.printer.print_info(f"{self.kind.kind} {name} created - id: {uid}")
        if self.on_created is not None:
            self.on_created(obj)
        self._known.add(name)
        if not self.channel.deliver(obj) and self.printer:
            self.printer.print_action(f"Discovery already settled, ignoring {self.kind.kind} {name}")

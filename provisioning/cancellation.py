#!/usr/bin/env python3
"""Cancellation token shared by every blocking operation of one run."""

import threading

from .exceptions import OperationCancelledError


class CancellationToken:
    """
    Cooperative cancellation signal.

    Blocking operations wait on the token instead of calling time.sleep, so
    cancel() unblocks them at once. A token created with a parent is
    cancelled whenever the parent is; cancelling the child leaves the parent
    untouched and detaches the child from it.
    """

    def __init__(self, parent=None):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks = []
        self.reason = None
        self._parent = parent
        self._cascade = None
        if parent is not None:
            self._cascade = lambda: self.cancel(parent.reason)
            parent.on_cancel(self._cascade)

    @property
    def cancelled(self):
        return self._event.is_set()

    def cancel(self, reason="operation cancelled"):
        """Fire the token and run registered callbacks once."""
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        if self._parent is not None:
            self._parent.remove_callback(self._cascade)
        for callback in callbacks:
            callback()

    def on_cancel(self, callback):
        """Register callback to run on cancellation (immediately if already cancelled)."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback):
        """Unregister a callback that has not run yet; unknown callbacks are ignored."""
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def wait(self, seconds):
        """Sleep up to seconds; returns True if the token fired meanwhile."""
        return self._event.wait(max(seconds, 0))

    def raise_if_cancelled(self, what):
        if self._event.is_set():
            raise OperationCancelledError(f"{what} cancelled: {self.reason}")

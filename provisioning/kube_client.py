#!/usr/bin/env python3
"""Kubectl-backed handle on the remote resource store."""

import json
import subprocess
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from .exceptions import KubectlCommandError, ProvisioningError
from .utilities import _build_kubectl_command, execute_kubectl_command


def _with_query(path: str, params: Optional[Dict[str, Any]]) -> str:
    if not params:
        return path
    query = urlencode({key: value for key, value in params.items() if value not in (None, "")})
    return f"{path}?{query}" if query else path


class WatchStream:
    """
    A streaming `kubectl get --raw ...?watch=true` subprocess.

    Iterating yields one decoded watch event ({"type": ..., "object": ...}) per
    line. close() terminates the subprocess and is safe to call from another
    thread to unblock a reader.
    """

    def __init__(self, command, printer=None):
        self.command = command
        self.printer = printer
        self._process = None
        self._closed = False

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
        return False

    def open(self):
        if self._closed:
            return
        if self.printer:
            shown = " ".join(arg for arg in self.command if not arg.startswith("--kubeconfig"))
            self.printer.print_action(f"Opening watch: {shown}")
        self._process = subprocess.Popen(
            self.command, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True, bufsize=1
        )

    def __iter__(self):
        if self._process is None:
            self.open()
        if self._process is None:
            return
        for line in self._process.stdout:
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as e:
                raise ProvisioningError(f"Malformed watch event: {e}") from e

        returncode = self._process.wait()
        if returncode != 0 and not self._closed:
            raise KubectlCommandError(self.command, self._process.stderr.read(), returncode)

    def close(self):
        self._closed = True
        if self._process is None or self._process.poll() is not None:
            return
        self._process.terminate()
        try:
            self._process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            self._process.kill()
            self._process.wait()


class KubeClient:
    """
    Explicit handle on the resource store, bound to one kubeconfig connection profile.

    Every request goes through kubectl's raw mode so the caller addresses
    collections by the REST path the discovery mapper resolved.
    """

    def __init__(
        self,
        kubeconfig=None,
        kubectl_binary="kubectl",
        printer=None,
        execute_kubectl_command=execute_kubectl_command,
        max_retries=3,
        request_timeout=60,
        token=None,
    ):
        """
        Initialize the client.

        Args:
            kubeconfig: Path to the kubeconfig file; None uses kubectl's own default
            kubectl_binary: Name or path of the kubectl binary
            printer: Printer instance for output
            execute_kubectl_command: Function to execute kubectl commands
            max_retries: Retries for transient connectivity failures per request
            request_timeout: Seconds before a single request is abandoned
            token: CancellationToken of the run; cancelling it ends in-flight requests and retries
        """
        self.kubeconfig = kubeconfig
        self.kubectl_binary = kubectl_binary
        self.printer = printer
        self.execute_kubectl_command = execute_kubectl_command
        self.max_retries = max_retries
        self.request_timeout = request_timeout
        self.token = token

    def _run(self, command, input_data=None):
        return self.execute_kubectl_command(
            command,
            kubeconfig=self.kubeconfig,
            kubectl_binary=self.kubectl_binary,
            input_data=input_data,
            json_output=True,
            printer=self.printer,
            max_retries=self.max_retries,
            timeout=self.request_timeout,
            token=self.token,
        )

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """GET a raw API path, returning the decoded body."""
        return self._run(["get", "--raw", _with_query(path, params)])

    def create(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """POST body to a collection path."""
        return self._run(["create", "--raw", path, "-f", "-"], input_data=json.dumps(body))

    def replace(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """PUT body to an object path."""
        return self._run(["replace", "--raw", path, "-f", "-"], input_data=json.dumps(body))

    def watch(self, path: str, params: Optional[Dict[str, Any]] = None) -> WatchStream:
        """Open a watch on a collection path."""
        watch_params = dict(params or {})
        watch_params["watch"] = "true"
        command = _build_kubectl_command(["get", "--raw", _with_query(path, watch_params)], self.kubeconfig, self.kubectl_binary)
        return WatchStream(command, printer=self.printer)

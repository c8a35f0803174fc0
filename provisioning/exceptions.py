#!/usr/bin/env python3
"""Exception hierarchy for the bare-metal provisioning orchestrator."""

import re

_SERVER_REASON_RE = re.compile(r"Error from server \((\w+)\)")

# Common API server connectivity issues that warrant retry
RETRYABLE_PATTERNS = [
    "connection refused",
    "connection reset",
    # kubectl: "The connection to the server HOST:PORT was refused"
    "was refused",
    "i/o timeout",
    "tls handshake timeout",
    "timeout",
    "timed out",
    "unable to connect to the server",
    "context deadline exceeded",
    "service unavailable",
    "server is currently unable to handle the request",
    "keepalive ping failed",
]


def _is_retryable_error(stderr_text):
    """Check if the error is worth retrying."""
    if not stderr_text:
        return False

    stderr_lower = stderr_text.lower()
    return any(pattern in stderr_lower for pattern in RETRYABLE_PATTERNS)


class ProvisioningError(Exception):
    """Base class for every error surfaced by the orchestrator."""


class ConfigurationError(ProvisioningError):
    """Missing or invalid configuration, or a programmer error such as a nil required field."""


class KubectlCommandError(ProvisioningError):
    """A kubectl invocation failed after all retries."""

    def __init__(self, command, stderr, returncode=None):
        self.command = list(command)
        self.stderr = (stderr or "").strip()
        self.returncode = returncode
        match = _SERVER_REASON_RE.search(self.stderr)
        self.reason = match.group(1) if match else None
        invocation = " ".join(arg for arg in self.command[1:] if not arg.startswith("--kubeconfig"))
        super().__init__(f"kubectl {invocation} failed: {self.stderr or 'no error output'}")

    @property
    def is_already_exists(self):
        return self.reason == "AlreadyExists" or "already exists" in self.stderr.lower()

    @property
    def is_conflict(self):
        return self.reason == "Conflict" or "the object has been modified" in self.stderr.lower()

    @property
    def is_not_found(self):
        return self.reason == "NotFound"

    @property
    def is_transient(self):
        if self.reason in ("ServiceUnavailable", "Timeout", "ServerTimeout"):
            return True
        return _is_retryable_error(self.stderr)


class ManifestDecodeError(ProvisioningError):
    """A manifest document could not be decoded into a typed resource."""


class ResourceMappingError(ProvisioningError):
    """A resource kind is unknown to the discovery mapper."""


class ManifestApplyError(ProvisioningError):
    """Applying one manifest of a sequence failed."""

    def __init__(self, index, description, cause):
        self.index = index
        self.description = description
        self.cause = cause
        super().__init__(f"error applying manifest #{index} ({description}): {cause}")


class PollTimeoutError(ProvisioningError):
    """A resource did not appear, or did not become ready, in time."""

    def __init__(self, description, phase, timeout):
        self.description = description
        self.phase = phase
        self.timeout = timeout
        super().__init__(f"timed out after {timeout}s waiting for {description} to {phase}")


class OperationCancelledError(ProvisioningError):
    """The operation's cancellation token fired while it was blocked."""


class TerminalFailureError(ProvisioningError):
    """A resource reached a terminal failed state."""


class DiscoveryError(ProvisioningError):
    """No hardware record was discovered for the host."""


class OrchestrationError(ProvisioningError):
    """A lifecycle stage failed; names the stage reached."""

    def __init__(self, stage, message):
        self.stage = stage
        super().__init__(f"{stage}: {message}")

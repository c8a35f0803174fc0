#!/usr/bin/env python3
"""Utilities module for the bare-metal provisioning orchestrator."""

import json
import random
import string
import subprocess
import time
from typing import Any, Callable, Optional

from .exceptions import (
    ConfigurationError,
    KubectlCommandError,
    OperationCancelledError,
    ProvisioningError,
    _is_retryable_error,
)

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def _build_kubectl_command(command: list, kubeconfig: Optional[str], kubectl_binary: str) -> list:
    """Build the kubectl command list.

    Args:
        command: List of command arguments (excluding the kubectl binary)
        kubeconfig: Path to the kubeconfig connection profile, or None for kubectl's default
        kubectl_binary: Name or path of the kubectl binary

    Returns:
        List of command arguments for subprocess.run
    """
    if kubeconfig:
        return [kubectl_binary, f"--kubeconfig={kubeconfig}", *command]
    return [kubectl_binary, *command]


def _log_retry_attempt(printer, attempt, max_retries, exec_command):
    """Log retry attempt information."""
    if not printer:
        return
    shown = " ".join(arg for arg in exec_command if not arg.startswith("--kubeconfig"))
    if attempt == 0:
        printer.print_action(f"Executing kubectl command: {shown}")
    else:
        printer.print_info(f"Retry attempt {attempt}/{max_retries}: {shown}")


def _handle_command_success(result, json_output, attempt, printer):
    """Handle successful command execution."""
    if attempt > 0 and printer:
        printer.print_success(f"Command succeeded on retry attempt {attempt}")
    if json_output:
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ProvisioningError(f"Failed to parse JSON output: {e}") from e
    return result.stdout.strip()


def _should_retry(stderr, attempt, max_retries, retry_delay, printer, token=None):
    """Decide whether a failed attempt is retried, sleeping before the retry.

    With a token the sleep ends as soon as the token is cancelled, raising
    OperationCancelledError instead of retrying.
    """
    if attempt < max_retries and _is_retryable_error(stderr):
        if printer:
            printer.print_warning(f"Command failed with retryable error, waiting {retry_delay}s before retry...")
            printer.print_info(f"Error: {stderr.strip()}")
        if token is None:
            time.sleep(retry_delay)
        elif token.wait(retry_delay):
            raise OperationCancelledError(f"kubectl retry cancelled: {token.reason}")
        return True
    return False


def _run_process(exec_command, input_data, timeout, token=None):
    """Run one kubectl invocation; a cancelled token kills the process."""
    if token is None:
        return subprocess.run(exec_command, input=input_data, capture_output=True, text=True, timeout=timeout)

    stdin = subprocess.PIPE if input_data is not None else None
    with subprocess.Popen(
        exec_command, stdin=stdin, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True
    ) as process:
        token.on_cancel(process.kill)
        try:
            stdout, stderr = process.communicate(input_data, timeout=timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            process.communicate()
            raise
        finally:
            token.remove_callback(process.kill)
    token.raise_if_cancelled("kubectl command")
    return subprocess.CompletedProcess(exec_command, process.returncode, stdout, stderr)


def execute_kubectl_command(
    command,
    kubeconfig=None,
    kubectl_binary="kubectl",
    input_data=None,
    json_output=False,
    printer=None,
    max_retries=3,
    retry_delay=2,
    timeout=60,
    token=None,
):
    """
    Execute a kubectl command with retry logic for API connectivity failures.

    Args:
        command: List of command arguments to execute (excluding 'kubectl')
        kubeconfig: Path to the kubeconfig connection profile
        kubectl_binary: Name or path of the kubectl binary
        input_data: Optional text passed on stdin (used with '-f -')
        json_output: If True, parse stdout as JSON
        printer: Printer instance for output
        max_retries: Maximum number of retry attempts (default: 3)
        retry_delay: Seconds to wait before the first retry (default: 2)
        timeout: Seconds before a single invocation is abandoned
        token: Optional CancellationToken; cancelling it kills a running
            invocation and ends the wait between retries

    Returns:
        str or dict: Command output as string, or parsed JSON if json_output=True.

    Raises:
        KubectlCommandError: If the command still fails after all retries
        ConfigurationError: If the kubectl binary cannot be executed
        OperationCancelledError: If token is cancelled
    """
    exec_command = _build_kubectl_command(command, kubeconfig, kubectl_binary)
    last_error = None

    for attempt in range(max_retries + 1):  # +1 for the initial attempt
        _log_retry_attempt(printer, attempt, max_retries, exec_command)
        try:
            result = _run_process(exec_command, input_data, timeout, token)
        except subprocess.TimeoutExpired:
            last_error = KubectlCommandError(exec_command, f"command timed out after {timeout} seconds")
            if _should_retry(last_error.stderr, attempt, max_retries, retry_delay, printer, token):
                retry_delay *= 1.5  # Exponential backoff with factor of 1.5
                continue
            raise last_error
        except OSError as e:
            raise ConfigurationError(f"Unable to run {kubectl_binary}: {e}") from e

        if result.returncode == 0:
            return _handle_command_success(result, json_output, attempt, printer)

        last_error = KubectlCommandError(exec_command, result.stderr, result.returncode)
        if _should_retry(result.stderr, attempt, max_retries, retry_delay, printer, token):
            retry_delay *= 1.5
            continue

        if printer:
            printer.print_action(f"Command failed: {last_error.stderr}")
        raise last_error

    raise last_error


def retry_on_conflict(operation: Callable[[], Any], attempts: int = 5, delay: float = 0.01, printer=None) -> Any:
    """Run operation, re-running it while the API server reports an update conflict.

    The operation must re-read the object it updates on every call, so each
    attempt carries the latest resourceVersion.

    Args:
        operation: Zero-argument callable performing read-modify-write
        attempts: Total number of attempts
        delay: Seconds to sleep between attempts
        printer: Printer instance for output

    Returns:
        Whatever operation returns on success
    """
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except KubectlCommandError as e:
            if not e.is_conflict or attempt == attempts:
                raise
            if printer:
                printer.print_warning(f"Update conflict (attempt {attempt}/{attempts}), re-reading and retrying...")
            time.sleep(delay)


def normalize_host_identifier(address):
    """Turn an IP or MAC address into a name-safe identifier (10.0.10.5 -> 10-0-10-5)."""
    return address.strip().lower().replace(".", "-").replace(":", "-")


def random_suffix(length=6):
    """Return a random lowercase alphanumeric correlation token."""
    return "".join(random.choice(_SUFFIX_ALPHABET) for _ in range(length))


def format_label_selector(key, value):
    """Format a single key=value label selector."""
    return f"{key}={value}"


def format_runtime(start_time, end_time):
    """
    Format runtime duration in a human-readable way.

    Args:
        start_time (float): Start timestamp from time.time()
        end_time (float): End timestamp from time.time()

    Returns:
        str: Formatted runtime string (e.g., "5m 23s", "1h 15m 30s")
    """
    total_seconds = int(end_time - start_time)

    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60

    if hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    elif minutes > 0:
        return f"{minutes}m {seconds}s"
    else:
        return f"{seconds}s"

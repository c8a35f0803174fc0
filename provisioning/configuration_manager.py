#!/usr/bin/env python3
"""Configuration Manager module: defaults, YAML config file and CLI overrides."""

import copy
import os

import yaml

from .constants import DEFAULT_NAMESPACE
from .exceptions import ConfigurationError

DEFAULT_KUBECONFIG = os.path.join("~", ".colony", "kubeconfig")

DEFAULT_TIMEOUTS = {
    "machine": 90,
    "job": 300,
    "workflow": 300,
    "discovery": 600,
    "deployment_read": 50,
    "deployment_wait": 120,
    "api_healthy": 120,
}

DEFAULT_POLL_INTERVALS = {
    "appear": 15,
    "ready": 5,
}

_KNOWN_KEYS = {
    "kubeconfig",
    "kubectl",
    "namespace",
    "timeouts",
    "poll_intervals",
    "default_template",
    "hardware_label_selector",
}


class ProvisioningConfig:
    """Resolved settings for one run."""

    def __init__(
        self,
        kubeconfig=None,
        kubectl_binary="kubectl",
        namespace=DEFAULT_NAMESPACE,
        timeouts=None,
        poll_intervals=None,
        default_template=None,
        hardware_label_selector=None,
    ):
        self.kubeconfig = kubeconfig
        self.kubectl_binary = kubectl_binary
        self.namespace = namespace
        self.timeouts = dict(DEFAULT_TIMEOUTS, **(timeouts or {}))
        self.poll_intervals = dict(DEFAULT_POLL_INTERVALS, **(poll_intervals or {}))
        self.default_template = default_template
        self.hardware_label_selector = hardware_label_selector

    def __repr__(self):
        return (
            f"ProvisioningConfig(kubeconfig={self.kubeconfig!r}, namespace={self.namespace!r}, "
            f"timeouts={self.timeouts!r}, poll_intervals={self.poll_intervals!r})"
        )


def _validate_seconds(section, values):
    if not isinstance(values, dict):
        raise ConfigurationError(f"'{section}' must be a mapping of name to seconds")
    for name, value in values.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise ConfigurationError(f"{section}.{name} must be a positive number of seconds, got {value!r}")


def load_config_file(path):
    """
    Load settings from a YAML config file.

    Args:
        path (str): Path to the YAML file

    Returns:
        dict: Settings found in the file (empty for an empty file)

    Raises:
        ConfigurationError: If the file is unreadable, not YAML, or has unknown keys
    """
    try:
        with open(os.path.expanduser(path), "r") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Config file {path} is not valid YAML: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    unknown = set(data) - _KNOWN_KEYS
    if unknown:
        raise ConfigurationError(f"Unknown settings in {path}: {', '.join(sorted(unknown))}")

    for section in ("timeouts", "poll_intervals"):
        if section in data:
            _validate_seconds(section, data[section])
    return data


def resolve_kubeconfig(explicit=None, environ=None):
    """
    Pick the kubeconfig path: explicit value, then $KUBECONFIG, then ~/.colony/kubeconfig.

    Raises:
        ConfigurationError: If the chosen file does not exist
    """
    environ = os.environ if environ is None else environ
    candidate = explicit or environ.get("KUBECONFIG") or DEFAULT_KUBECONFIG
    path = os.path.expanduser(candidate)
    if not os.path.isfile(path):
        raise ConfigurationError(f"kubeconfig not found at {path}")
    return path


def build_provisioning_config(args, environ=None):
    """
    Merge defaults, the optional --config file and CLI flags, in that order of precedence.

    Args:
        args: Parsed command line arguments
        environ: Environment mapping (defaults to os.environ)

    Returns:
        ProvisioningConfig: The resolved settings
    """
    settings = {}
    config_path = getattr(args, "config", None)
    if config_path:
        settings = copy.deepcopy(load_config_file(config_path))

    timeouts = settings.get("timeouts", {})
    for name in DEFAULT_TIMEOUTS:
        override = getattr(args, f"{name}_timeout", None)
        if override is not None:
            timeouts[name] = override

    kubeconfig = resolve_kubeconfig(getattr(args, "kubeconfig", None) or settings.get("kubeconfig"), environ)

    return ProvisioningConfig(
        kubeconfig=kubeconfig,
        kubectl_binary=getattr(args, "kubectl", None) or settings.get("kubectl", "kubectl"),
        namespace=getattr(args, "namespace", None) or settings.get("namespace", DEFAULT_NAMESPACE),
        timeouts=timeouts,
        poll_intervals=settings.get("poll_intervals"),
        default_template=settings.get("default_template"),
        hardware_label_selector=settings.get("hardware_label_selector"),
    )

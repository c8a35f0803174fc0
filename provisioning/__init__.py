#!/usr/bin/env python3
"""
Bare-Metal Provisioning Orchestrator - Modular Components.

This package drives a Tinkerbell/Rufio management cluster through kubectl to
register hardware credentials, apply manifests and sequence the power-cycle,
discovery, provisioning and confirmation lifecycle of bare-metal hosts.

Modules:
- print_manager: Handles all output formatting and printing
- exceptions: Error hierarchy rooted at ProvisioningError
- utilities: kubectl execution with retries and small helpers
- cancellation: Cancellation token shared by every blocking wait
- kube_client: Raw REST access and watch streams through kubectl
- discovery_mapper: Resolves resource kinds to their collection endpoints
- manifest: Decodes manifest text into typed documents
- manifest_applier: Create-or-update of manifests with conflict retry
- readiness_poller: Two-phase waits with per-kind readiness predicates
- resource_watch: Hardware creation watch and discovery rendezvous
- resource_manager: Credential labelling, hardware lookups and asset listing
- manifest_templates: Renders credential, power job and workflow manifests
- hardware_orchestrator: Lifecycle sequencing and completion handling
- configuration_manager: Defaults, config file and kubeconfig resolution
- arguments_parser: Command-line argument parsing
"""

from .arguments_parser import ArgumentsParser
from .cancellation import CancellationToken
from .configuration_manager import ProvisioningConfig, build_provisioning_config, load_config_file, resolve_kubeconfig
from .discovery_mapper import DiscoveryMapper, GroupVersionKind, ResourceTypeMapping
from .exceptions import (
    ConfigurationError,
    DiscoveryError,
    KubectlCommandError,
    ManifestApplyError,
    ManifestDecodeError,
    OperationCancelledError,
    OrchestrationError,
    PollTimeoutError,
    ProvisioningError,
    ResourceMappingError,
    TerminalFailureError,
)
from .hardware_orchestrator import (
    HardwareLifecycleOrchestrator,
    LifecycleState,
    handle_provisioning_failure,
    handle_successful_completion,
)
from .kube_client import KubeClient, WatchStream
from .manifest import DecodedManifest, decode_manifest, decode_manifest_documents, iter_manifest_documents
from .manifest_applier import ManifestApplier
from .manifest_templates import ManifestTemplates
from .print_manager import PrintManager, printer, DEBUG_MODE
from .readiness_poller import ReadinessPoller, ResourceLocator, poll_until
from .resource_manager import ResourceManager
from .resource_watch import DiscoveryChannel, ResourceWatch
from .utilities import execute_kubectl_command, format_runtime, normalize_host_identifier

__all__ = [
    "ArgumentsParser",
    "CancellationToken",
    "ProvisioningConfig",
    "build_provisioning_config",
    "load_config_file",
    "resolve_kubeconfig",
    "DiscoveryMapper",
    "GroupVersionKind",
    "ResourceTypeMapping",
    "ConfigurationError",
    "DiscoveryError",
    "KubectlCommandError",
    "ManifestApplyError",
    "ManifestDecodeError",
    "OperationCancelledError",
    "OrchestrationError",
    "PollTimeoutError",
    "ProvisioningError",
    "ResourceMappingError",
    "TerminalFailureError",
    "HardwareLifecycleOrchestrator",
    "LifecycleState",
    "handle_provisioning_failure",
    "handle_successful_completion",
    "KubeClient",
    "WatchStream",
    "DecodedManifest",
    "decode_manifest",
    "decode_manifest_documents",
    "iter_manifest_documents",
    "ManifestApplier",
    "ManifestTemplates",
    "PrintManager",
    "printer",
    "DEBUG_MODE",
    "ReadinessPoller",
    "ResourceLocator",
    "poll_until",
    "ResourceManager",
    "DiscoveryChannel",
    "ResourceWatch",
    "execute_kubectl_command",
    "format_runtime",
    "normalize_host_identifier",
]

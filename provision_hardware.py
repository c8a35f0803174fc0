#!/usr/bin/env python3
"""
Bare-Metal Provisioning Tool

Main entry point: builds the kubectl-backed collaborators once, wires them into
the hardware lifecycle orchestrator and dispatches the requested subcommand.
"""

import signal
import sys
import time

from provisioning import (
    ArgumentsParser,
    CancellationToken,
    DiscoveryChannel,
    DiscoveryMapper,
    HardwareLifecycleOrchestrator,
    KubeClient,
    ManifestApplier,
    ManifestTemplates,
    ProvisioningError,
    ReadinessPoller,
    ResourceManager,
    ResourceWatch,
    build_provisioning_config,
    format_runtime,
    handle_provisioning_failure,
    handle_successful_completion,
    printer,
)
from provisioning.exceptions import ConfigurationError


def build_orchestrator(config, token=None):
    """Create the collaborators for one run, all bound to the same client handle and token."""
    kube_client = KubeClient(
        kubeconfig=config.kubeconfig, kubectl_binary=config.kubectl_binary, printer=printer, token=token
    )
    mapper = DiscoveryMapper(kube_client, printer=printer)

    dependencies = {
        "printer": printer,
        "kube_client": kube_client,
        "mapper": mapper,
        "config": config,
        "format_runtime": format_runtime,
        "applier": ManifestApplier(kube_client, mapper, printer=printer, default_namespace=config.namespace),
        "poller": ReadinessPoller(
            kube_client,
            mapper,
            printer=printer,
            appear_interval=config.poll_intervals["appear"],
            ready_interval=config.poll_intervals["ready"],
            default_namespace=config.namespace,
        ),
        "resource_manager": ResourceManager(kube_client, mapper, printer=printer, namespace=config.namespace),
        "templates": ManifestTemplates(namespace=config.namespace),
        "ResourceWatch": ResourceWatch,
        "DiscoveryChannel": DiscoveryChannel,
    }
    return HardwareLifecycleOrchestrator(**dependencies)


def _read_manifest_files(filenames):
    manifests = []
    for filename in filenames:
        try:
            with open(filename, "r") as f:
                manifests.append(f.read())
        except OSError as e:
            raise ConfigurationError(f"Cannot read manifest file {filename}: {e}") from e
    return manifests


def run_command(args, orchestrator, token):
    """
    Dispatch one parsed subcommand.

    Returns:
        str: The subject named in the completion banner
    """
    if args.command == "add-ipmi":
        orchestrator.register_credentials(
            args.ip,
            args.username,
            args.password,
            insecure_tls=args.insecure,
            token=token,
            auto_discover=args.auto_discover,
            template_ref=args.template,
        )
        return args.ip
    if args.command == "provision":
        orchestrator.provision(args.ip, template_ref=args.template, token=token)
        return args.ip
    if args.command == "deprovision":
        orchestrator.deprovision(args.hardware_id, token=token, boot_device=args.boot_device, efi_boot=args.efi_boot)
        return args.hardware_id
    if args.command == "reboot":
        orchestrator.reboot(args.hardware_id, boot_device=args.boot_device, efi_boot=args.efi_boot, token=token)
        return args.hardware_id
    if args.command == "apply":
        orchestrator.applier.apply_manifests(_read_manifest_files(args.filenames))
        return ", ".join(args.filenames)
    if args.command == "assets":
        orchestrator.list_assets()
        return "hardware assets"
    if args.command == "wait-deployments":
        orchestrator.poller.wait_for_api_healthy(token, timeout=orchestrator.config.timeouts["api_healthy"])
        orchestrator.wait_for_deployments(args.selectors, token=token)
        return ", ".join(args.selectors)
    raise ConfigurationError(f"Unknown command {args.command}")


def main(argv=None):
    """
    Main function to run one hardware lifecycle command.

    Returns:
        int: Process exit code (0 on success, 1 on failure)
    """
    args = ArgumentsParser.parse_arguments(argv)
    start_time = time.time()
    token = CancellationToken()

    def cancel_on_interrupt(signum, frame):
        printer.print_warning("Interrupt received, cancelling...")
        token.cancel("interrupted by user")

    previous_handler = signal.signal(signal.SIGINT, cancel_on_interrupt)
    printer.print_header("Bare-Metal Provisioning Tool")
    try:
        config = build_provisioning_config(args)
        orchestrator = build_orchestrator(config, token)
        subject = run_command(args, orchestrator, token)
    except ProvisioningError as e:
        handle_provisioning_failure(e, format_runtime, start_time, printer=printer)
        return 1
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    handle_successful_completion(args.command, subject, start_time, printer=printer, format_runtime=format_runtime)
    return 0


def cli():
    sys.exit(main())


if __name__ == "__main__":
    cli()

#!/usr/bin/env python3
"""Orchestrator module for the bare-metal hardware lifecycle."""

import time
from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, List, Optional

from .cancellation import CancellationToken
from .constants import HARDWARE_KIND, NAME_LABEL, NETWORK_BOOT_DEVICE, NORMAL_BOOT_DEVICE
from .exceptions import ConfigurationError, OperationCancelledError, OrchestrationError, ProvisioningError
from .resource_manager import ASSET_COLUMNS
from .utilities import normalize_host_identifier


class LifecycleState(Enum):
    START = "start"
    POWERED_FOR_DISCOVERY = "powered for discovery"
    AWAITING_HARDWARE = "awaiting hardware"
    ASSOCIATED = "associated"
    PROVISIONING = "provisioning"
    CONFIRMED = "confirmed"


def _hardware_mac(hardware: Dict[str, Any]) -> str:
    interfaces = hardware.get("spec", {}).get("interfaces") or []
    mac = (interfaces[0].get("dhcp") or {}).get("mac") if interfaces else None
    if not mac:
        name = hardware.get("metadata", {}).get("name", "<unnamed>")
        raise ProvisioningError(f"hardware {name} reports no MAC address on its first interface")
    return mac


def hardware_matches_host(host_id: str):
    """Return a predicate selecting the hardware records that belong to host_id.

    A record belongs to the host when its BMC reference names the host's
    Machine, or when it carries the host's name label or annotation.
    """

    def matches(hardware: Dict[str, Any]) -> bool:
        metadata = hardware.get("metadata") or {}
        bmc_ref = (hardware.get("spec") or {}).get("bmcRef") or {}
        return host_id in (
            bmc_ref.get("name"),
            (metadata.get("labels") or {}).get(NAME_LABEL),
            (metadata.get("annotations") or {}).get(NAME_LABEL),
        )

    return matches


class HardwareLifecycleOrchestrator:
    """
    Sequences the hardware lifecycle: power-cycle into network boot, discover the
    hardware record, associate it with the host's credentials, run the
    provisioning workflow and power-cycle back to normal boot.
    """

    def __init__(self, **dependencies: Any) -> None:
        """
        Initialize the orchestrator with all required dependencies.

        Args:
            **dependencies: All required collaborators including:
                - printer: PrintManager instance for output formatting
                - kube_client: KubeClient bound to the connection profile
                - mapper: DiscoveryMapper resolving resource kinds
                - applier: ManifestApplier
                - poller: ReadinessPoller
                - resource_manager: ResourceManager
                - templates: ManifestTemplates
                - config: ProvisioningConfig carrying namespace and timeouts
                - ResourceWatch: ResourceWatch class constructor
                - DiscoveryChannel: DiscoveryChannel class constructor
                - format_runtime: Function to format time durations
        """
        # Core dependencies
        self.printer = dependencies["printer"]
        self.kube_client = dependencies["kube_client"]
        self.mapper = dependencies["mapper"]
        self.config = dependencies["config"]
        self.format_runtime = dependencies["format_runtime"]

        # Lifecycle collaborators
        self.applier = dependencies["applier"]
        self.poller = dependencies["poller"]
        self.resource_manager = dependencies["resource_manager"]
        self.templates = dependencies["templates"]

        # Class constructors
        self.ResourceWatch = dependencies["ResourceWatch"]
        self.DiscoveryChannel = dependencies["DiscoveryChannel"]

        self.state = LifecycleState.START

    @property
    def namespace(self) -> str:
        return self.config.namespace

    def _timeout(self, name: str) -> float:
        return self.config.timeouts[name]

    @contextmanager
    def _stage(self, description: str, reaches: Optional[LifecycleState] = None):
        """Annotate failures inside the block with the stage; record reaches on success."""
        try:
            yield
        except OperationCancelledError:
            raise
        except OrchestrationError:
            raise
        except ProvisioningError as e:
            raise OrchestrationError(description, f"{e} (last state reached: {self.state.value})") from e
        if reaches is not None:
            self.state = reaches

    def _power_cycle(self, host_id: str, boot_device: str, efi_boot: bool, token) -> str:
        job_id, manifest = self.templates.power_cycle_job(host_id, boot_device, efi_boot)
        self.printer.print_info(f"Power cycling {host_id} with one-time boot device '{boot_device}' (job {job_id})")
        self.applier.apply_manifests([manifest])
        self.poller.wait_for_job(job_id, token, timeout=self._timeout("job"), namespace=self.namespace)
        return job_id

    def _run_workflow(self, rendered, token) -> Dict[str, Any]:
        job_id, manifest = rendered
        self.applier.apply_manifests([manifest])
        return self.poller.wait_for_workflow(job_id, token, timeout=self._timeout("workflow"), namespace=self.namespace)

    def _new_watch(self, host_id: str, channel):
        def label_credentials(hardware):
            self.resource_manager.label_credentials_with_hardware(host_id, hardware)

        return self.ResourceWatch(
            kube_client=self.kube_client,
            mapper=self.mapper,
            kind=HARDWARE_KIND,
            namespace=self.namespace,
            channel=channel,
            on_created=label_credentials,
            label_selector=self.config.hardware_label_selector,
            matches=hardware_matches_host(host_id),
            printer=self.printer,
        )

    def register_credentials(
        self,
        host_ip: str,
        username: str,
        password: str,
        insecure_tls: bool = True,
        token: Optional[CancellationToken] = None,
        auto_discover: bool = False,
        template_ref: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Store BMC credentials for a host and wait until its BMC is contactable.

        Args:
            host_ip: IP address of the host's BMC
            username: BMC username
            password: BMC password
            insecure_tls: Skip TLS verification when talking to the BMC
            token: Cancellation token bound to the waits
            auto_discover: Continue straight into provision() once contactable
            template_ref: Provisioning template used when auto_discover is set

        Returns:
            The discovered hardware record when auto_discover is set, else None
        """
        token = token or CancellationToken()
        host_id = normalize_host_identifier(host_ip)

        self.printer.print_step(1, 2, f"Registering IPMI credentials for {host_ip}")
        with self._stage("register credentials"):
            self.applier.apply_manifests(
                [
                    self.templates.ipmi_secret(host_ip, username, password),
                    self.templates.bmc_machine(host_ip, insecure_tls),
                ]
            )

        self.printer.print_step(2, 2, f"Waiting for machine {host_id} to become contactable")
        with self._stage("wait for machine"):
            self.poller.wait_for_machine(host_id, token, timeout=self._timeout("machine"), namespace=self.namespace)
        self.printer.print_success(f"Machine {host_id} is contactable")

        if auto_discover:
            return self.provision(host_ip, template_ref=template_ref, token=token)
        return None

    def provision(
        self, host_ip: str, template_ref: Optional[str] = None, token: Optional[CancellationToken] = None
    ) -> Dict[str, Any]:
        """
        Take a registered host from network boot to a provisioned, confirmed machine.

        The hardware watch starts before the discovery power cycle so the
        hardware record created by that boot cannot be missed.

        Args:
            host_ip: IP address of the host's BMC
            template_ref: Provisioning template name; defaults to the configured one
            token: Cancellation token bound to every wait

        Returns:
            The discovered hardware record

        Raises:
            OrchestrationError: Naming the stage that failed
            OperationCancelledError: If token is cancelled
        """
        template_ref = template_ref or self.config.default_template
        if not template_ref:
            raise ConfigurationError("no provisioning template given and no default_template configured")

        token = token or CancellationToken()
        host_id = normalize_host_identifier(host_ip)
        total_steps = 5
        self.state = LifecycleState.START

        watch_token = CancellationToken(parent=token)
        channel = self.DiscoveryChannel()
        watch = self._new_watch(host_id, channel)

        try:
            self.printer.print_step(1, total_steps, "Starting hardware watch")
            with self._stage("start hardware watch"):
                watch.start(watch_token)

            self.printer.print_step(2, total_steps, f"Power cycling {host_id} into network boot")
            with self._stage("power cycle for discovery", LifecycleState.POWERED_FOR_DISCOVERY):
                self._power_cycle(host_id, NETWORK_BOOT_DEVICE, True, token)

            self.state = LifecycleState.AWAITING_HARDWARE
            self.printer.print_step(3, total_steps, f"Waiting for hardware discovery of {host_id}")
            with self._stage("await hardware discovery", LifecycleState.ASSOCIATED):
                hardware = channel.wait(token, self._timeout("discovery"))
            hardware_name = hardware["metadata"]["name"]
            self.printer.print_success(f"Hardware {hardware_name} associated with {host_id}")

            self.printer.print_step(4, total_steps, f"Running provisioning workflow '{template_ref}' on {hardware_name}")
            with self._stage("provisioning workflow", LifecycleState.PROVISIONING):
                self._run_workflow(
                    self.templates.provisioning_workflow(template_ref, hardware_name, _hardware_mac(hardware)), token
                )

            self.printer.print_step(5, total_steps, f"Power cycling {host_id} into normal boot")
            with self._stage("power cycle to normal boot", LifecycleState.CONFIRMED):
                self._power_cycle(host_id, NORMAL_BOOT_DEVICE, True, token)
        finally:
            watch_token.cancel("provisioning run finished")

        return hardware

    def deprovision(
        self,
        hardware_id: str,
        token: Optional[CancellationToken] = None,
        boot_device: str = NORMAL_BOOT_DEVICE,
        efi_boot: bool = True,
    ) -> None:
        """Wipe a machine's disks and return it to service without network boot."""
        token = token or CancellationToken()
        total_steps = 4

        self.printer.print_step(1, total_steps, f"Looking up host for hardware {hardware_id}")
        with self._stage("look up host"):
            host_id = self.resource_manager.find_host_for_hardware(hardware_id)

        self.printer.print_step(2, total_steps, f"Clearing network boot instructions of {hardware_id}")
        with self._stage("clear network boot"):
            hardware = self.resource_manager.clear_hardware_ipxe(hardware_id)

        self.printer.print_step(3, total_steps, f"Wiping disks of {hardware_id}")
        with self._stage("wipe disks workflow"):
            self._run_workflow(self.templates.wipe_disks_workflow(hardware_id, _hardware_mac(hardware)), token)

        self.printer.print_step(4, total_steps, f"Power cycling {host_id}")
        with self._stage("power cycle after deprovision"):
            self._power_cycle(host_id, boot_device, efi_boot, token)

    def reboot(
        self,
        hardware_id: str,
        boot_device: str = NETWORK_BOOT_DEVICE,
        efi_boot: bool = True,
        token: Optional[CancellationToken] = None,
    ) -> str:
        """Power-cycle the host backing hardware_id; returns the power Job's correlation id."""
        token = token or CancellationToken()
        with self._stage("look up host"):
            host_id = self.resource_manager.find_host_for_hardware(hardware_id)
        with self._stage("reboot"):
            return self._power_cycle(host_id, boot_device, efi_boot, token)

    def list_assets(self) -> List[Dict[str, str]]:
        rows = self.resource_manager.list_hardware()
        self.printer.print_table(ASSET_COLUMNS, rows)
        return rows

    def wait_for_deployments(self, label_selectors, token: Optional[CancellationToken] = None):
        """Wait for the deployments matched by each selector in the configured namespace."""
        token = token or CancellationToken()
        with self._stage("wait for deployments"):
            return self.poller.wait_for_deployments(
                [(selector, self.namespace) for selector in label_selectors],
                token,
                read_timeout=self._timeout("deployment_read"),
                wait_timeout=self._timeout("deployment_wait"),
            )


def handle_successful_completion(
    operation: str, subject: str, start_time: float, printer: Any = None, format_runtime: Any = None
) -> None:
    """
    Print the completion banner for a finished operation.

    Args:
        operation: Name of the operation (e.g. "provision")
        subject: Host or hardware the operation acted on
        start_time: Start time of the operation
        printer: PrintManager instance for output formatting
        format_runtime: Function to format time duration
    """
    total_runtime = format_runtime(start_time, time.time())
    printer.print_header(f"{operation.capitalize()} of '{subject}' completed successfully!")
    printer.print_info(f"Total runtime: {total_runtime}")


def handle_provisioning_failure(error: BaseException, format_runtime: Any, start_time: float, printer: Any = None) -> None:
    """
    Print a failed run's error chain and runtime.

    Args:
        error: The exception that ended the run
        format_runtime: Function to format time duration
        start_time: Start time of the operation
        printer: PrintManager instance for output formatting
    """
    total_runtime = format_runtime(start_time, time.time())
    printer.print_error(f"Operation failed: {error}")
    cause = error.__cause__
    while cause is not None:
        printer.print_error(f"  caused by: {cause}")
        cause = cause.__cause__
    printer.print_error(f"Total runtime before failure: {total_runtime}")
    printer.print_info("Partially applied resources are not rolled back; check the logs above for details")

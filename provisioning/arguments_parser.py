#!/usr/bin/env python3
"""Arguments Parser module for the bare-metal provisioning tool."""

import argparse

from . import print_manager
from .constants import NETWORK_BOOT_DEVICE, NORMAL_BOOT_DEVICE


def _str_to_bool(value):
    lowered = str(value).lower()
    if lowered in ("true", "yes", "1"):
        return True
    if lowered in ("false", "no", "0"):
        return False
    raise argparse.ArgumentTypeError(f"expected true or false, got '{value}'")


def _add_boot_options(parser, default_device):
    parser.add_argument(
        "--boot-device",
        type=str,
        default=default_device,
        help=f"The one-time boot device to set (pxe, disk, bios); defaults to {default_device}",
    )
    parser.add_argument(
        "--efi-boot",
        type=_str_to_bool,
        default=True,
        help="Boot with UEFI (true) or legacy BIOS (false); defaults to true",
    )


class ArgumentsParser:
    """Handles command-line argument parsing for hardware lifecycle operations"""

    @staticmethod
    def build_parser():
        """
        Build the argument parser with one subcommand per operation

        Returns:
            argparse.ArgumentParser: The configured parser
        """
        parser = argparse.ArgumentParser(
            prog="provision-hardware",
            description="Register, provision and deprovision bare-metal hardware through the management cluster",
        )
        parser.add_argument("--kubeconfig", type=str, help="Path to the kubeconfig connection profile")
        parser.add_argument("--config", type=str, help="Path to a YAML config file")
        parser.add_argument("--namespace", type=str, help="Namespace holding hardware resources")
        parser.add_argument("--kubectl", type=str, help="Name or path of the kubectl binary")
        parser.add_argument(
            "--debug",
            action="store_true",
            help="Enable debug output (shows command execution details)",
        )
        for name in ("machine", "job", "workflow", "discovery"):
            parser.add_argument(
                f"--{name}-timeout",
                type=int,
                default=None,
                help=f"Seconds to wait for the {name} step",
            )

        subparsers = parser.add_subparsers(dest="command", required=True)

        add_ipmi = subparsers.add_parser("add-ipmi", help="Register IPMI credentials for a host")
        add_ipmi.add_argument("--ip", type=str, required=True, help="The IPMI IP address")
        add_ipmi.add_argument("--username", type=str, default="admin", help="The IPMI username")
        add_ipmi.add_argument("--password", type=str, required=True, help="The IPMI password")
        add_ipmi.add_argument(
            "--insecure", type=_str_to_bool, default=True, help="Skip IPMI TLS verification; defaults to true"
        )
        add_ipmi.add_argument(
            "--auto-discover", action="store_true", help="Power cycle and provision the host once registered"
        )
        add_ipmi.add_argument("--template", type=str, help="Provisioning template used with --auto-discover")

        provision = subparsers.add_parser("provision", help="Discover and provision a registered host")
        provision.add_argument("--ip", type=str, required=True, help="The IPMI IP address of the host")
        provision.add_argument("--template", type=str, help="The provisioning template to run")

        deprovision = subparsers.add_parser(
            "deprovision", help="Wipe a host and return it to service - very destructive"
        )
        deprovision.add_argument("--hardware-id", type=str, required=True, help="Hardware id of the host")
        _add_boot_options(deprovision, NORMAL_BOOT_DEVICE)

        reboot = subparsers.add_parser("reboot", help="Power cycle a host")
        reboot.add_argument("--hardware-id", type=str, required=True, help="Hardware id of the host")
        _add_boot_options(reboot, NETWORK_BOOT_DEVICE)

        apply = subparsers.add_parser("apply", help="Apply manifest files in order")
        apply.add_argument(
            "-f", "--filename", dest="filenames", action="append", required=True, help="Manifest file (repeatable)"
        )

        subparsers.add_parser("assets", help="List the hardware assets")

        wait = subparsers.add_parser("wait-deployments", help="Wait for deployments to become ready")
        wait.add_argument(
            "--selector", dest="selectors", action="append", required=True, help="Label selector key=value (repeatable)"
        )

        return parser

    @staticmethod
    def parse_arguments(argv=None):
        """
        Parse command-line arguments and return configuration

        Returns:
            argparse.Namespace: Parsed arguments
        """
        args = ArgumentsParser.build_parser().parse_args(argv)

        # Set global debug mode
        print_manager.DEBUG_MODE = args.debug

        return args

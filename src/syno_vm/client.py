"""Virtual Machine Manager client that drives virsh over SSH."""

import logging
import shlex
from typing import Any, List, Optional

from syno_vm.config import Settings
from syno_vm.exceptions import CommandError, ConfigurationError, NotSupportedError
from syno_vm.models import Template, VirtualMachine, VMConfig
from syno_vm.parsers import find_ipv4, parse_vm_info, parse_vm_list
from syno_vm.ssh import SSHExecutor

logger = logging.getLogger(__name__)

VIRSH = "/usr/local/bin/virsh"


class VMMClient:
    """Manages guests on a Synology NAS by running virsh commands over SSH."""

    def __init__(self, settings: Settings, executor: Optional[Any] = None) -> None:
        """
        Initialize the client.

        Args:
            settings: Resolved connection settings
            executor: Object with ``execute_command(str) -> str`` and ``close()``;
                      defaults to an SSHExecutor built from ``settings``

        Raises:
            ConfigurationError: If host or username is not configured
        """
        if not settings.host:
            raise ConfigurationError("host not configured. Run 'syno-vm config set --host <hostname>'")
        if not settings.username:
            raise ConfigurationError("username not configured. Run 'syno-vm config set --username <username>'")

        self.settings = settings
        self.executor = executor if executor is not None else SSHExecutor(settings)

    def _virsh(self, *args: str) -> str:
        command = " ".join([VIRSH] + [shlex.quote(arg) for arg in args])
        return self.executor.execute_command(command)

    def list_vms(self) -> List[VirtualMachine]:
        """List all guests, running or not."""
        return parse_vm_list(self._virsh("list", "--all"))

    def start_vm(self, name: str) -> None:
        logger.info("Starting VM %s", name)
        self._virsh("start", name)

    def stop_vm(self, name: str) -> None:
        """Request a graceful guest shutdown."""
        logger.info("Stopping VM %s", name)
        self._virsh("shutdown", name)

    def restart_vm(self, name: str) -> None:
        logger.info("Restarting VM %s", name)
        self._virsh("reboot", name)

    def delete_vm(self, name: str) -> None:
        """Undefine the guest. Disk images are left in place."""
        logger.info("Deleting VM %s", name)
        self._virsh("undefine", name)

    def get_vm_status(self, name: str) -> VirtualMachine:
        """Return detailed information for one guest.

        The IP address lookup is best-effort: guests without a DHCP lease or
        a failing ``domifaddr`` simply have no address.
        """
        vm = parse_vm_info(name, self._virsh("dominfo", name))
        vm.ip_address = self._get_vm_ip_address(name)
        return vm

    def _get_vm_ip_address(self, name: str) -> Optional[str]:
        try:
            output = self._virsh("domifaddr", name)
        except CommandError as e:
            logger.debug("No interface addresses for %s: %s", name, e)
            return None
        return find_ipv4(output)

    def create_vm(self, config: VMConfig) -> None:
        """Validate a creation request; creation itself needs the VMM interface."""
        config.validate()
        raise NotSupportedError(
            "VM creation via virsh requires XML configuration - "
            "please use the VMM interface for VM creation"
        )

    def list_templates(self) -> List[Template]:
        # VMM keeps templates outside libvirt; nothing to read over SSH.
        return []

    def create_template(self, template_name: str, vm_name: str) -> None:
        raise NotSupportedError("template creation requires the VMM interface - not implemented via virsh")

    def delete_template(self, template_name: str) -> None:
        raise NotSupportedError("template deletion requires the VMM interface - not implemented via virsh")

    def execute_command(self, command: str) -> str:
        """Run an arbitrary command on the NAS (used for diagnostics)."""
        return self.executor.execute_command(command)

    def close(self) -> None:
        self.executor.close()

    def __enter__(self) -> "VMMClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

#!/usr/bin/env python3
"""
Command-line interface for Synology Virtual Machine Manager.

    syno-vm config set --host nas.local --username admin --keyfile ~/.ssh/id_ed25519
    syno-vm list --all
    syno-vm start my-vm
    syno-vm status my-vm --json
"""

import json
import logging
import platform
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, NoReturn, Optional

import typer
from rich.console import Console
from rich.table import Table

from syno_vm import __version__
from syno_vm.client import VMMClient
from syno_vm.config import HIDDEN_KEYS, ConfigStore, expand_user_path, load_settings
from syno_vm.exceptions import ConfigurationError, SynoVMError
from syno_vm.models import VMConfig
from syno_vm.webapi import VirtualizationAPI, WebAPIClient

# Initialize CLI app and console
app = typer.Typer(
    name="syno-vm",
    help="Manage virtual machines on Synology NAS devices with Virtual Machine Manager",
    add_completion=False,
)
console = Console()

# Configure logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s [%(levelname)8s] %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

HIDDEN = "[hidden]"
# States hidden from `list` unless --all is given
INACTIVE_STATES = {"shut off", "stopped"}


def fail(context: str, error: Exception) -> NoReturn:
    """Print an error and exit with status 1."""
    console.print(f"❌ {context}: {error}", markup=False)
    raise typer.Exit(1)


def get_store(ctx: typer.Context) -> ConfigStore:
    obj = ctx.obj or {}
    return obj.get("store") or ConfigStore()


@contextmanager
def vmm_client(ctx: typer.Context) -> Iterator[VMMClient]:
    """Yield a VMMClient built from the configured settings and close it afterwards."""
    try:
        client = VMMClient(load_settings(get_store(ctx)))
    except ConfigurationError as e:
        fail("Failed to create client", e)
    try:
        yield client
    finally:
        client.close()


# === VM COMMANDS ===

@app.command("list")
def list_vms(
    ctx: typer.Context,
    show_all: bool = typer.Option(False, "--all", "-a", help="Show all VMs including stopped ones"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table"),
) -> None:
    """List virtual machines on the NAS."""
    with vmm_client(ctx) as client:
        try:
            vms = client.list_vms()
        except SynoVMError as e:
            fail("Failed to list VMs", e)

    if not show_all:
        vms = [vm for vm in vms if vm.status not in INACTIVE_STATES]

    if as_json:
        typer.echo(json.dumps([vm.to_dict() for vm in vms], indent=2))
        return

    if not vms:
        console.print("No virtual machines found.")
        return

    table = Table(title="Virtual Machines")
    table.add_column("Name", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("CPU", style="yellow")
    table.add_column("Memory", style="magenta")

    for vm in vms:
        table.add_row(vm.name, vm.status, f"{vm.cpu} cores", f"{vm.memory} MB")

    console.print(table)


@app.command("create")
def create_vm(
    ctx: typer.Context,
    name: str = typer.Option(..., "--name", help="Name of the virtual machine"),
    template: str = typer.Option("", "--template", help="Template to use for VM creation"),
    cpu: int = typer.Option(2, "--cpu", help="Number of CPU cores"),
    memory: int = typer.Option(2048, "--memory", help="Memory in MB"),
    storage: str = typer.Option("", "--storage", help="Storage configuration"),
) -> None:
    """Create a new virtual machine."""
    config = VMConfig(name=name, template=template, cpu=cpu, memory=memory, storage=storage)

    console.print(f"Creating VM: {name}", markup=False)
    console.print(f"  CPU: {cpu} cores")
    console.print(f"  Memory: {memory} MB")
    if template:
        console.print(f"  Template: {template}", markup=False)

    with vmm_client(ctx) as client:
        try:
            client.create_vm(config)
        except SynoVMError as e:
            fail("Failed to create VM", e)

    console.print(f"✅ VM {name} created successfully", markup=False)


@app.command("start")
def start_vm(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="VM name"),
) -> None:
    """Start a virtual machine."""
    with vmm_client(ctx) as client:
        console.print(f"Starting VM: {name}", markup=False)
        try:
            client.start_vm(name)
        except SynoVMError as e:
            fail("Failed to start VM", e)
    console.print(f"✅ VM {name} started successfully", markup=False)


@app.command("stop")
def stop_vm(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="VM name"),
) -> None:
    """Gracefully shut down a virtual machine."""
    with vmm_client(ctx) as client:
        console.print(f"Stopping VM: {name}", markup=False)
        try:
            client.stop_vm(name)
        except SynoVMError as e:
            fail("Failed to stop VM", e)
    console.print(f"✅ VM {name} stopped successfully", markup=False)


@app.command("restart")
def restart_vm(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="VM name"),
) -> None:
    """Restart a virtual machine."""
    with vmm_client(ctx) as client:
        console.print(f"Restarting VM: {name}", markup=False)
        try:
            client.restart_vm(name)
        except SynoVMError as e:
            fail("Failed to restart VM", e)
    console.print(f"✅ VM {name} restarted successfully", markup=False)


@app.command("status")
def vm_status(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="VM name"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table"),
) -> None:
    """Show detailed status for a virtual machine."""
    with vmm_client(ctx) as client:
        try:
            vm = client.get_vm_status(name)
        except SynoVMError as e:
            fail("Failed to get VM status", e)

    if as_json:
        typer.echo(json.dumps(vm.to_dict(), indent=2))
        return

    table = Table(title=f"Virtual Machine: {vm.name}")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Status", vm.status)
    table.add_row("CPU Cores", str(vm.cpu))
    table.add_row("Memory", f"{vm.memory} MB")
    table.add_row("Storage", vm.storage or "-")
    if vm.ip_address:
        table.add_row("IP Address", vm.ip_address)

    console.print(table)


@app.command("delete")
def delete_vm(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="VM name"),
    force: bool = typer.Option(False, "--force", "-f", help="Delete without confirmation"),
) -> None:
    """Delete a virtual machine. This cannot be undone."""
    if not force:
        confirmed = typer.confirm(
            f"Are you sure you want to delete VM '{name}'? This action cannot be undone.",
            default=False,
        )
        if not confirmed:
            console.print("Delete cancelled.")
            return

    with vmm_client(ctx) as client:
        console.print(f"Deleting VM: {name}", markup=False)
        try:
            client.delete_vm(name)
        except SynoVMError as e:
            fail("Failed to delete VM", e)
    console.print(f"✅ VM {name} deleted successfully", markup=False)


# === TEMPLATE COMMANDS ===

template_app = typer.Typer(help="Manage VM templates")
app.add_typer(template_app, name="template")


@template_app.command("list")
def list_templates(ctx: typer.Context) -> None:
    """List available VM templates."""
    with vmm_client(ctx) as client:
        try:
            templates = client.list_templates()
        except SynoVMError as e:
            fail("Failed to list templates", e)

    if not templates:
        console.print("No templates found.")
        return

    table = Table(title="Templates")
    table.add_column("Name", style="cyan")
    table.add_column("Description", style="green")
    table.add_column("OS", style="yellow")
    for template in templates:
        table.add_row(template.name, template.description, template.os)
    console.print(table)


@template_app.command("create")
def create_template(
    ctx: typer.Context,
    name: str = typer.Option(..., "--name", help="Name of the template"),
    from_vm: str = typer.Option(..., "--from-vm", help="Existing VM to create the template from"),
) -> None:
    """Create a VM template from an existing VM."""
    with vmm_client(ctx) as client:
        console.print(f"Creating template '{name}' from VM '{from_vm}'", markup=False)
        try:
            client.create_template(name, from_vm)
        except SynoVMError as e:
            fail("Failed to create template", e)
    console.print(f"✅ Template {name} created successfully", markup=False)


@template_app.command("delete")
def delete_template(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Template name"),
) -> None:
    """Delete a VM template."""
    with vmm_client(ctx) as client:
        console.print(f"Deleting template: {name}", markup=False)
        try:
            client.delete_template(name)
        except SynoVMError as e:
            fail("Failed to delete template", e)
    console.print(f"✅ Template {name} deleted successfully", markup=False)


# === CONFIGURATION COMMANDS ===

config_app = typer.Typer(help="Manage syno-vm configuration")
app.add_typer(config_app, name="config")


def _display_value(key: str, value: object) -> str:
    return HIDDEN if key in HIDDEN_KEYS else str(value)


@config_app.command("set")
def config_set(
    ctx: typer.Context,
    host: Optional[str] = typer.Option(None, "--host", help="Synology NAS hostname or IP address"),
    username: Optional[str] = typer.Option(None, "--username", help="Username for authentication"),
    password: Optional[str] = typer.Option(None, "--password", help="Password for web API authentication"),
    port: Optional[int] = typer.Option(None, "--port", help="SSH port"),
    keyfile: Optional[str] = typer.Option(None, "--keyfile", help="SSH private key file path"),
    timeout: Optional[int] = typer.Option(None, "--timeout", help="Connection timeout in seconds"),
) -> None:
    """Set configuration values."""
    values = {
        "host": host,
        "username": username,
        "password": password,
        "port": port,
        "keyfile": keyfile,
        "timeout": timeout,
    }
    if all(value is None for value in values.values()):
        fail("Failed to set configuration", ConfigurationError("no configuration values provided"))

    store = get_store(ctx)
    try:
        updated = store.set_values(**values)
    except (ConfigurationError, OSError) as e:
        fail("Failed to set configuration", e)

    for key, value in updated.items():
        console.print(f"Set {key}: {_display_value(key, value)}", markup=False)
    logger.debug("Configuration saved to %s", store.path)


@config_app.command("get")
def config_get(
    ctx: typer.Context,
    key: Optional[str] = typer.Argument(None, help="Configuration key"),
) -> None:
    """Get a configuration value (all values when no key is given)."""
    if key is None:
        config_list(ctx)
        return

    try:
        value = get_store(ctx).get(key)
    except ConfigurationError as e:
        fail("Failed to read configuration", e)

    if value is None:
        fail("Failed to read configuration", ConfigurationError(f"configuration key '{key}' not found"))
    console.print(f"{key}: {_display_value(key, value)}", markup=False)


@config_app.command("list")
def config_list(ctx: typer.Context) -> None:
    """List all configuration values."""
    try:
        items = get_store(ctx).items()
    except ConfigurationError as e:
        fail("Failed to read configuration", e)

    console.print("Current configuration:")
    for key, value in items:
        console.print(f"  {key}: {_display_value(key, value)}", markup=False)


# === DIAGNOSTIC COMMANDS ===

diagnose_app = typer.Typer(help="Check connectivity to the NAS")
app.add_typer(diagnose_app, name="diagnose")

SSH_PROBES = [
    ("virsh", "ls -l /usr/local/bin/virsh 2>/dev/null || echo 'virsh not found'"),
    ("Virtual packages", "ls /var/packages/ | grep -i virtual || echo 'No virtual packages found'"),
    ("System info", "uname -a"),
]


@diagnose_app.command("ssh")
def diagnose_ssh(ctx: typer.Context) -> None:
    """Test the SSH connection and probe the appliance."""
    with vmm_client(ctx) as client:
        console.print(f"Testing connection to {client.settings.username}@{client.settings.host}...", markup=False)
        try:
            output = client.execute_command("echo 'SSH connection successful'")
        except SynoVMError as e:
            fail("SSH connection failed", e)
        console.print(f"✅ {output.strip()}", markup=False)

        for label, command in SSH_PROBES:
            try:
                output = client.execute_command(command)
            except SynoVMError as e:
                console.print(f"⚠️  {label}: {e}", markup=False)
                continue
            console.print(f"{label}: {output.strip()}", markup=False)

    console.print("✅ Connection test completed successfully!")


@diagnose_app.command("webapi")
def diagnose_webapi(ctx: typer.Context) -> None:
    """Test web API login and list guests through Virtual Machine Manager."""
    try:
        settings = load_settings(get_store(ctx))
        if not settings.host:
            raise ConfigurationError("host not configured. Run 'syno-vm config set --host <hostname>'")
        if not settings.username:
            raise ConfigurationError("username not configured. Run 'syno-vm config set --username <username>'")
        if not settings.password:
            raise ConfigurationError("password not configured. Run 'syno-vm config set --password <password>'")
    except ConfigurationError as e:
        fail("Failed to create web API client", e)

    console.print(f"Testing web API connection to {settings.username}@{settings.host}...", markup=False)
    client = WebAPIClient(settings.host, settings.username, settings.password)
    try:
        try:
            client.login()
        except SynoVMError as e:
            fail("Login failed", e)
        console.print("✅ Login successful!")

        try:
            guests = VirtualizationAPI(client).list_guests()
        except SynoVMError as e:
            fail("Guest list failed", e)

        table = Table(title="Guests (web API)")
        table.add_column("Name", style="cyan")
        table.add_column("Status", style="green")
        for guest in guests:
            table.add_row(str(guest.get("guest_name", "?")), str(guest.get("status", "?")))
        console.print(table)
    finally:
        client.close()


# === VERSION ===

@app.command("version")
def version(
    build: bool = typer.Option(False, "--build", "-b", help="Show build information"),
) -> None:
    """Show version information."""
    console.print(f"syno-vm version {__version__}")
    if build:
        console.print("\nBuild Information:")
        console.print(f"  Version:        {__version__}")
        console.print(f"  Python Version: {platform.python_version()}")
        console.print(f"  Platform:       {platform.system().lower()}/{platform.machine()}")


# === MAIN ENTRY POINT ===

@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None, "--config", help="Config file (default is ~/.syno-vm/config.yaml)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """
    syno-vm manages virtual machines on Synology NAS devices running
    Virtual Machine Manager, over SSH (virsh) and the DSM web API.
    """
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    store_path = Path(expand_user_path(str(config))) if config else None
    ctx.obj = {"store": ConfigStore(store_path)}


if __name__ == "__main__":
    app()

"""Parsers for virsh text output.

virsh output is meant for humans and carries no schema version, so malformed
fields fall back to zero values instead of failing the whole parse.
"""

import re
from typing import List, Optional

from syno_vm.models import VirtualMachine

LIST_HEADER_LINES = 2
IPV4_RE = re.compile(r"(\d+\.\d+\.\d+\.\d+)")
DIGITS_RE = re.compile(r"[0-9]+\Z")


def parse_vm_list(output: str) -> List[VirtualMachine]:
    """Parse ``virsh list --all`` output.

    Expected layout::

         Id   Name         State
        ----------------------------
         1    test-vm      running
         -    stopped-vm   shut off

    Rows with fewer than three fields are skipped.
    """
    lines = output.strip().split("\n")
    if len(lines) <= LIST_HEADER_LINES:
        return []

    vms = []
    for line in lines[LIST_HEADER_LINES:]:
        fields = line.split()
        if len(fields) < 3:
            continue
        # State may span several words ("shut off", "in shutdown")
        vms.append(VirtualMachine(name=fields[1], status=" ".join(fields[2:])))
    return vms


def _parse_memory_mb(value: str) -> int:
    """Convert a "Max memory" value such as ``2097152 KiB`` to megabytes."""
    parts = value.split()
    if not parts:
        return 0
    try:
        return int(float(parts[0]) / 1024)
    except (ValueError, OverflowError):
        return 0


def parse_vm_info(name: str, output: str) -> VirtualMachine:
    """Parse ``virsh dominfo`` output into a VirtualMachine."""
    vm = VirtualMachine(name=name)

    for line in output.split("\n"):
        key, sep, value = line.strip().partition(":")
        if not sep:
            continue
        key = key.strip()
        value = value.strip()

        if key == "State":
            vm.status = value
        elif key == "CPU(s)":
            if DIGITS_RE.match(value):
                vm.cpu = int(value)
        elif key == "Max memory":
            vm.memory = _parse_memory_mb(value)

    return vm


def find_ipv4(output: str) -> Optional[str]:
    """Return the first dotted-quad address in ``virsh domifaddr`` output."""
    for line in output.split("\n"):
        match = IPV4_RE.search(line)
        if match:
            return match.group(1)
    return None

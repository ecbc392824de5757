"""Shared test fixtures and configuration for syno-vm tests."""

from typing import Dict, List, Union
from unittest import mock

import pytest

from syno_vm.config import CONFIG_KEYS, ENV_PREFIX, ConfigStore, Settings


VIRSH_LIST_OUTPUT = """\
 Id   Name         State
-----------------------------
 1    test-vm      running
 -    stopped-vm   shut off
 3    paused-vm    paused
"""

VIRSH_DOMINFO_OUTPUT = """\
Id:             1
Name:           test-vm
UUID:           9c4e5bd8-6f6c-4b1a-8d47-2b2f4c1d9a10
OS Type:        hvm
State:          running
CPU(s):         2
CPU time:       123.4s
Max memory:     2097152 KiB
Used memory:    2097152 KiB
Persistent:     yes
Autostart:      disable
"""

VIRSH_DOMIFADDR_OUTPUT = """\
 Name       MAC address          Protocol     Address
-------------------------------------------------------------------------------
 vnet0      52:54:00:ab:cd:ef    ipv4         192.168.1.100/24
"""


class FakeExecutor:
    """Stands in for SSHExecutor: maps command lines to canned output or errors."""

    def __init__(self, responses: Dict[str, Union[str, Exception]] = None) -> None:
        self.responses = dict(responses or {})
        self.commands: List[str] = []
        self.closed = False

    def execute_command(self, command: str) -> str:
        self.commands.append(command)
        result = self.responses.get(command, "")
        if isinstance(result, Exception):
            raise result
        return result

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep SYNO_VM_* variables and stray .env files out of every test."""
    for key in CONFIG_KEYS:
        monkeypatch.delenv(f"{ENV_PREFIX}{key.upper()}", raising=False)
    with mock.patch("syno_vm.config.load_dotenv"):
        yield


@pytest.fixture
def settings() -> Settings:
    """Complete connection settings for a test NAS."""
    return Settings(host="nas.local", username="admin", password="secret", port=22, timeout=30)


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor(
        {
            "/usr/local/bin/virsh list --all": VIRSH_LIST_OUTPUT,
            "/usr/local/bin/virsh dominfo test-vm": VIRSH_DOMINFO_OUTPUT,
            "/usr/local/bin/virsh domifaddr test-vm": VIRSH_DOMIFADDR_OUTPUT,
        }
    )


@pytest.fixture
def config_store(tmp_path) -> ConfigStore:
    """Config store backed by a temporary file."""
    return ConfigStore(tmp_path / ".syno-vm" / "config.yaml")


@pytest.fixture
def mock_ssh_client():
    """Mock paramiko SSH client with one agent key and a successful command."""
    with mock.patch("syno_vm.ssh.paramiko.SSHClient") as mock_ssh, \
         mock.patch("syno_vm.ssh.paramiko.Agent") as mock_agent:
        client = mock.MagicMock()
        mock_ssh.return_value = client
        mock_agent.return_value.get_keys.return_value = (mock.MagicMock(),)

        stdout = mock.MagicMock()
        stderr = mock.MagicMock()
        stdout.read.return_value = b"command output"
        stderr.read.return_value = b""
        stdout.channel.recv_exit_status.return_value = 0

        client.exec_command.return_value = (mock.MagicMock(), stdout, stderr)

        yield client


@pytest.fixture
def mock_session():
    """Mock requests session whose GET responses are queued JSON payloads."""
    session = mock.MagicMock()
    session.headers = {}

    def queue(*payloads):
        responses = []
        for payload in payloads:
            response = mock.MagicMock()
            response.status_code = 200
            response.json.return_value = payload
            responses.append(response)
        session.get.side_effect = responses

    session.queue = queue
    return session


# virsh output fixtures
@pytest.fixture
def virsh_list_output() -> str:
    """virsh list --all output with running, shut off and paused guests."""
    return VIRSH_LIST_OUTPUT


@pytest.fixture
def virsh_dominfo_output() -> str:
    """virsh dominfo output for a running 2-core, 2 GiB guest."""
    return VIRSH_DOMINFO_OUTPUT


@pytest.fixture
def virsh_domifaddr_output() -> str:
    """virsh domifaddr output with one IPv4 lease."""
    return VIRSH_DOMIFADDR_OUTPUT

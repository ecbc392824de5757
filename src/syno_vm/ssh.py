"""SSH command execution against the NAS.

A single paramiko connection is opened on first use and reused for every
command in the process. Host keys are accepted without verification: the
appliance typically has no entry in known_hosts and this client trusts the
address it was configured with.
"""

import logging
import socket
from typing import Any, List, Optional

import paramiko

from syno_vm.config import Settings, expand_user_path
from syno_vm.exceptions import AuthenticationError, CommandError, ConfigurationError, ConnectionError

logger = logging.getLogger(__name__)


class SSHExecutor:
    """Runs single command lines on the NAS over a lazily opened SSH session."""

    def __init__(self, settings: Settings) -> None:
        self.host = settings.host
        self.port = settings.port
        self.username = settings.username
        self.keyfile = settings.keyfile
        self.timeout = settings.timeout
        self._client: Optional[paramiko.SSHClient] = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    def _agent_keys(self) -> List[Any]:
        """Return keys offered by the running ssh-agent, if any."""
        try:
            agent = paramiko.Agent()
        except paramiko.SSHException as e:
            logger.debug("ssh-agent unavailable: %s", e)
            return []
        try:
            return list(agent.get_keys())
        finally:
            agent.close()

    def _load_keyfile(self) -> Optional[paramiko.PKey]:
        """Load the configured private key, or None if unset or unusable."""
        if not self.keyfile:
            return None
        path = expand_user_path(self.keyfile)
        try:
            return paramiko.PKey.from_path(path)
        except (OSError, ValueError, paramiko.SSHException) as e:
            logger.warning("Ignoring SSH key file %s: %s", path, e)
            return None

    def connect(self) -> None:
        """Open the SSH connection if it is not already open.

        Raises:
            ConfigurationError: If host or username is not set
            AuthenticationError: If no key is available or the server rejects them
            ConnectionError: If the SSH handshake fails
        """
        if self._client is not None:
            return

        if not self.host:
            raise ConfigurationError("host not configured. Run 'syno-vm config set --host <hostname>'")
        if not self.username:
            raise ConfigurationError("username not configured. Run 'syno-vm config set --username <username>'")

        agent_keys = self._agent_keys()
        pkey = self._load_keyfile()
        if not agent_keys and pkey is None:
            raise AuthenticationError(
                "no SSH authentication methods available. "
                "Please ensure ssh-agent is running or configure a keyfile"
            )

        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        logger.debug(
            "Connecting to %s@%s:%d (agent keys: %d, keyfile: %s, host key not verified)",
            self.username,
            self.host,
            self.port,
            len(agent_keys),
            "yes" if pkey is not None else "no",
        )

        try:
            client.connect(
                hostname=self.host,
                port=self.port,
                username=self.username,
                pkey=pkey,
                allow_agent=bool(agent_keys),
                look_for_keys=False,
                timeout=self.timeout,
                banner_timeout=self.timeout,
                auth_timeout=self.timeout,
            )
        except paramiko.AuthenticationException as e:
            client.close()
            raise AuthenticationError(f"SSH authentication failed for {self.username}@{self.host}: {e}") from e
        except (paramiko.SSHException, socket.error) as e:
            client.close()
            raise ConnectionError(f"failed to connect to SSH server {self.host}:{self.port}: {e}") from e

        self._client = client

    def execute_command(self, command: str) -> str:
        """Run one command and return its stdout verbatim.

        Raises:
            CommandError: If the command exits non-zero or no channel can be opened
        """
        self.connect()
        assert self._client is not None

        logger.debug("Executing remote command: %s", command)
        try:
            stdin, stdout, stderr = self._client.exec_command(command)
        except (paramiko.SSHException, socket.error) as e:
            raise CommandError(command, stderr=f"failed to create SSH session: {e}") from e

        channel = stdout.channel
        try:
            output = stdout.read().decode("utf-8", errors="replace")
            error = stderr.read().decode("utf-8", errors="replace")
            exit_status = channel.recv_exit_status()
        finally:
            channel.close()

        if exit_status != 0:
            logger.debug("Remote command exited %d: %s", exit_status, error.strip())
            raise CommandError(command, stderr=error, exit_status=exit_status)

        return output

    def close(self) -> None:
        """Close the SSH connection; errors while closing are only logged."""
        if self._client is None:
            return
        client, self._client = self._client, None
        try:
            client.close()
        except Exception as e:
            logger.warning("Error closing SSH connection to %s: %s", self.host, e)

    def __enter__(self) -> "SSHExecutor":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

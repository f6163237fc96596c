"""SSH transport built on asyncssh."""

import asyncio
from typing import Any, Dict, Optional

import asyncssh
from pydantic import Field

from execbroker.modules.api.models import ConnectionType

from .errors import ConnectionError, ExecutionError
from .interface import ActionHandler, Client, CommandOutput, TransportSettings


class SSHSettings(TransportSettings):
    host: str = Field(..., min_length=1, description="Hostname or address")
    port: int = Field(22, ge=1, le=65535)
    username: Optional[str] = None
    password: Optional[str] = None
    private_key: Optional[str] = Field(None, description="Path to a private key file")
    passphrase: Optional[str] = None
    known_hosts: Optional[str] = Field(None, description="Path to a known_hosts file")


class SSHClient(Client):
    """Client for a remote host reached over SSH."""

    connection_type = ConnectionType.SSH
    settings_model = SSHSettings

    def __init__(self, descriptor, config=None):
        super().__init__(descriptor, config)
        self._conn: Optional[asyncssh.SSHClientConnection] = None

    def describe(self) -> str:
        user = f"{self.settings.username}@" if self.settings.username else ""
        return f"ssh://{user}{self.settings.host}:{self.settings.port}"

    def _connect_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {
            "host": self.settings.host,
            "port": self.settings.port,
            "connect_timeout": self.connect_timeout,
        }
        if self.settings.username:
            options["username"] = self.settings.username
        if self.settings.password:
            options["password"] = self.settings.password
        if self.settings.private_key:
            options["client_keys"] = [self.settings.private_key]
            if self.settings.passphrase:
                options["passphrase"] = self.settings.passphrase

        if not self.config.ssh_verify_host_keys:
            options["known_hosts"] = None
        elif self.settings.known_hosts or self.config.ssh_known_hosts:
            options["known_hosts"] = self.settings.known_hosts or self.config.ssh_known_hosts
        return options

    async def _connect(self) -> None:
        try:
            self._conn = await asyncssh.connect(**self._connect_options())
        except asyncssh.PermissionDenied as e:
            raise ConnectionError(f"Authentication failed for {self.describe()}") from e
        except asyncssh.HostKeyNotVerifiable as e:
            raise ConnectionError(f"Host key not verifiable for {self.describe()}") from e
        except asyncssh.Error as e:
            raise ConnectionError(f"SSH connection to {self.describe()} failed: {e.reason}") from e

    async def _run_shell(self, script: str) -> CommandOutput:
        self.logger.debug(f"Running on {self.describe()}: {script!r}")
        try:
            result = await self._conn.run(script, check=False, timeout=self.timeout)
        except asyncio.TimeoutError:
            raise
        except asyncssh.Error as e:
            raise ExecutionError(f"SSH command failed: {e.reason}") from e

        return CommandOutput(
            exit_code=result.returncode if result.returncode is not None else -1,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
        )

    async def _info(self) -> Dict[str, Any]:
        output = await self._run_shell("uname -s; uname -r; uname -m; hostname")
        if not output.success:
            raise ExecutionError(
                f"Failed to read host information: {output.stderr.strip()}",
                context=output.to_dict(),
            )
        fields = (output.stdout.splitlines() + ["", "", "", ""])[:4]
        system, release, machine, hostname = (field.strip() for field in fields)
        return {
            "type": self.connection_type.value,
            "host": self.settings.host,
            "port": self.settings.port,
            "username": self.settings.username,
            "hostname": hostname,
            "os": system,
            "release": release,
            "machine": machine,
        }

    async def _disconnect(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        conn.close()
        await conn.wait_closed()

    def _extra_actions(self) -> Dict[str, ActionHandler]:
        return {
            "upload": self._action_upload,
            "download": self._action_download,
        }

    async def _action_upload(self, data: Dict[str, Any]) -> Dict[str, Any]:
        local_path = self._require_field(data, "local_path")
        remote_path = self._remote_path(self._require_field(data, "remote_path"))
        await self._sftp("put", local_path, remote_path)
        return {"local_path": local_path, "remote_path": remote_path}

    async def _action_download(self, data: Dict[str, Any]) -> Dict[str, Any]:
        remote_path = self._remote_path(self._require_field(data, "remote_path"))
        local_path = self._require_field(data, "local_path")
        await self._sftp("get", remote_path, local_path)
        return {"local_path": local_path, "remote_path": remote_path}

    async def _sftp(self, method: str, source: str, destination: str) -> None:
        try:
            async with self._conn.start_sftp_client() as sftp:
                await getattr(sftp, method)(source, destination)
        except asyncssh.Error as e:
            raise ExecutionError(f"SFTP {method} failed: {e.reason}") from e

    def _remote_path(self, path: str) -> str:
        if self.settings.workdir and not path.startswith("/"):
            return f"{self.settings.workdir.rstrip('/')}/{path}"
        return path

"""Local shell transport: runs commands as subprocesses of the broker."""

import asyncio
import os
import platform
import shutil
from typing import Any, Dict, Optional

from pydantic import Field

from execbroker.modules.api.models import ConnectionType

from .errors import ConnectionError
from .interface import ActionHandler, Client, CommandOutput, TransportSettings


class LocalSettings(TransportSettings):
    shell: Optional[str] = Field(None, description="Shell binary, defaults to the configured shell")
    env: Dict[str, str] = Field(default_factory=dict, description="Extra environment variables")


class LocalClient(Client):
    """Client for the machine the broker runs on."""

    connection_type = ConnectionType.LOCAL
    settings_model = LocalSettings

    def __init__(self, descriptor, config=None):
        super().__init__(descriptor, config)
        self._shell_path: Optional[str] = None

    async def _connect(self) -> None:
        shell = self.settings.shell or self.config.shell
        resolved = shutil.which(shell)
        if not resolved:
            raise ConnectionError(f"Shell not found: {shell}")
        if self.settings.workdir and not os.path.isdir(self.settings.workdir):
            raise ConnectionError(f"Working directory not found: {self.settings.workdir}")
        self._shell_path = resolved

    async def _run_shell(self, script: str) -> CommandOutput:
        env = {**os.environ, **self.settings.env} if self.settings.env else None

        self.logger.debug(f"Running: {self._shell_path} -c {script!r}")
        process = await asyncio.create_subprocess_exec(
            self._shell_path,
            "-c",
            script,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise

        return CommandOutput(
            exit_code=process.returncode,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )

    async def _info(self) -> Dict[str, Any]:
        uname = platform.uname()
        return {
            "type": self.connection_type.value,
            "hostname": uname.node,
            "os": uname.system,
            "release": uname.release,
            "version": uname.version,
            "machine": uname.machine,
            "shell": self._shell_path,
            "cwd": self.settings.workdir or os.getcwd(),
        }

    async def _disconnect(self) -> None:
        self._shell_path = None

    def _extra_actions(self) -> Dict[str, ActionHandler]:
        return {"copy_file": self._action_copy_file}

    async def _action_copy_file(self, data: Dict[str, Any]) -> Dict[str, Any]:
        source = self._resolve(self._require_field(data, "source"))
        destination = self._resolve(self._require_field(data, "destination"))
        copied_to = await asyncio.to_thread(shutil.copy2, source, destination)
        return {"source": source, "destination": str(copied_to)}

    def _resolve(self, path: str) -> str:
        if self.settings.workdir:
            return os.path.join(self.settings.workdir, path)
        return path

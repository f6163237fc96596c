"""
Docker transport: execs into a running container through the docker SDK.

The SDK is synchronous, so every call runs in a worker thread and is
bounded by the client's timeout.
"""

import asyncio
from typing import Any, Callable, Dict, Optional, Type

import docker
from docker.errors import APIError, DockerException
from pydantic import Field

from execbroker.modules.api.models import ConnectionType

from .errors import BrokerError, ConnectionError, ExecutionError
from .interface import ActionHandler, Client, CommandOutput, TransportSettings


class DockerSettings(TransportSettings):
    container: str = Field(..., min_length=1, description="Container id or name")
    host: Optional[str] = Field(None, description="unix:// socket or tcp:// daemon address")
    user: Optional[str] = Field(None, description="User to exec as")
    shell: str = "/bin/sh"


class DockerClient(Client):
    """Client for a running Docker container."""

    connection_type = ConnectionType.DOCKER
    settings_model = DockerSettings

    def __init__(self, descriptor, config=None):
        super().__init__(descriptor, config)
        self._engine: Optional[docker.DockerClient] = None
        self._container = None

    def describe(self) -> str:
        return f"docker://{self.settings.container}"

    def _build_engine(self) -> docker.DockerClient:
        """Open an SDK client. Negotiating the API version contacts the daemon."""
        base_url = self.settings.host or f"unix://{self.config.docker_socket}"
        return docker.DockerClient(base_url=base_url, timeout=self.timeout)

    async def _call(
        self,
        func: Callable[..., Any],
        *args: Any,
        error_cls: Type[BrokerError] = ExecutionError,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> Any:
        """
        Run a blocking SDK call in a worker thread.

        Args:
            func: SDK callable
            error_cls: Broker error raised for daemon and API failures
            timeout: Seconds to wait, defaults to the command timeout

        Returns:
            Whatever the SDK call returns
        """
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func, *args, **kwargs),
                timeout=timeout or self.timeout,
            )
        except APIError as e:
            raise error_cls(
                f"Docker API error {e.status_code}: {e.explanation or e}",
                context={"status": e.status_code},
            ) from e
        except DockerException as e:
            raise error_cls(f"Cannot reach Docker daemon: {e}") from e

    async def _connect(self) -> None:
        self._engine = await self._call(
            self._build_engine, error_cls=ConnectionError, timeout=self.connect_timeout
        )
        self._container = await self._call(
            self._engine.containers.get,
            self.settings.container,
            error_cls=ConnectionError,
            timeout=self.connect_timeout,
        )

        if self._container.status != "running":
            raise ConnectionError(
                f"Container {self.settings.container} is not running "
                f"(status: {self._container.status})"
            )

    async def _run_shell(self, script: str) -> CommandOutput:
        self.logger.debug(f"Running in {self.describe()}: {script!r}")
        result = await self._call(
            self._container.exec_run,
            [self.settings.shell, "-c", script],
            stdout=True,
            stderr=True,
            user=self.settings.user or "",
            demux=True,
        )
        stdout, stderr = result.output or (None, None)

        return CommandOutput(
            exit_code=result.exit_code if result.exit_code is not None else -1,
            stdout=(stdout or b"").decode(errors="replace"),
            stderr=(stderr or b"").decode(errors="replace"),
        )

    async def _info(self) -> Dict[str, Any]:
        await self._call(self._container.reload)
        attrs = self._container.attrs
        state = attrs.get("State", {})
        container_config = attrs.get("Config", {})
        return {
            "type": self.connection_type.value,
            "id": attrs.get("Id"),
            "name": attrs.get("Name", "").lstrip("/"),
            "image": container_config.get("Image"),
            "hostname": container_config.get("Hostname"),
            "status": state.get("Status"),
            "running": state.get("Running", False),
            "started_at": state.get("StartedAt"),
            "platform": attrs.get("Platform"),
        }

    async def _disconnect(self) -> None:
        self._container = None
        if self._engine is None:
            return
        engine, self._engine = self._engine, None
        await asyncio.to_thread(engine.close)

    def _extra_actions(self) -> Dict[str, ActionHandler]:
        return {
            "logs": self._action_logs,
            "restart": self._action_restart,
        }

    async def _action_logs(self, data: Dict[str, Any]) -> str:
        output = await self._call(
            self._container.logs, stdout=True, stderr=True, tail=int(data.get("tail", 100))
        )
        return output.decode(errors="replace")

    async def _action_restart(self, data: Dict[str, Any]) -> Dict[str, Any]:
        kwargs = {}
        if "wait" in data:
            kwargs["timeout"] = int(data["wait"])
        await self._call(self._container.restart, **kwargs)
        return {"container": self.settings.container, "restarted": True}

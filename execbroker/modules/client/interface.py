"""
Client capability interface shared by every transport.

A Client is one not-yet-connected handle to an execution environment.
It is created per request, connected once, used, and disconnected before
the request completes:

    UNCONNECTED -> CONNECTED (-> SET_UP) -> DISCONNECTED

The base class enforces that state machine, owns the action registry and
translates raw transport failures (OSError, timeouts) into the broker's
error taxonomy. Transports only implement the underscore hooks.
"""

import abc
import asyncio
import logging
import shlex
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, ClassVar, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from execbroker.config.provider import TransportConfig
from execbroker.modules.api.models import ConnectionDescriptor, ConnectionType

from .errors import (
    BrokerError,
    ConfigurationError,
    ConnectionError,
    ExecutionError,
    UnsupportedActionError,
)

ActionHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


class ClientState(str, Enum):
    """Lifecycle state of a client instance."""

    UNCONNECTED = "unconnected"
    CONNECTED = "connected"
    SET_UP = "set_up"
    DISCONNECTED = "disconnected"


@dataclass
class CommandOutput:
    """Raw result of one shell invocation on a target."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class TransportSettings(BaseModel):
    """Fields every transport understands."""

    model_config = ConfigDict(extra="ignore")

    timeout: Optional[float] = Field(None, gt=0, description="Per-operation timeout in seconds")
    workdir: Optional[str] = Field(None, description="Directory commands run in")


class Client(abc.ABC):
    """Abstract client for one execution environment."""

    connection_type: ClassVar[ConnectionType]
    settings_model: ClassVar[Type[TransportSettings]] = TransportSettings

    def __init__(
        self,
        descriptor: ConnectionDescriptor,
        config: Optional[TransportConfig] = None,
    ):
        """
        Build a client without performing any I/O.

        Args:
            descriptor: Connection descriptor this client was built from
            config: Transport defaults

        Raises:
            ConfigurationError: If the transport-specific fields are invalid
        """
        self._descriptor = descriptor
        self.config = config or TransportConfig()
        self.settings = self._parse_settings(descriptor)
        self.state = ClientState.UNCONNECTED
        self._connect_attempted = False
        self.logger = logging.getLogger(f"execbroker.client.{self.connection_type.value}")

    @classmethod
    def _parse_settings(cls, descriptor: ConnectionDescriptor) -> TransportSettings:
        try:
            return cls.settings_model.model_validate(descriptor.options)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid {cls.connection_type.value} connection: {e.errors()[0]['msg']}",
                context={"errors": [err["msg"] for err in e.errors()]},
            ) from e

    @property
    def timeout(self) -> float:
        return self.settings.timeout or self.config.command_timeout

    @property
    def connect_timeout(self) -> float:
        return self.settings.timeout or self.config.connect_timeout

    # Public capability interface

    async def connect(self) -> None:
        """
        Establish the environment-specific session.

        Raises:
            ConnectionError: Target unreachable, unauthorized or missing
        """
        if self._connect_attempted:
            raise ConnectionError("connect() may only be called once per client")
        self._connect_attempted = True

        try:
            await self._connect()
        except BrokerError:
            raise
        except asyncio.TimeoutError as e:
            raise ConnectionError(
                f"Timed out connecting after {self.connect_timeout}s"
            ) from e
        except OSError as e:
            raise ConnectionError(f"Failed to connect: {e}") from e

        self.state = ClientState.CONNECTED
        self.logger.debug(f"Connected to {self.describe()}")

    async def setup(self) -> None:
        """
        Prepare the connected environment.

        Creates the configured workdir, or checks that a shell answers.

        Raises:
            ConnectionError: Setup failed or client not connected
        """
        if self.state is not ClientState.CONNECTED:
            raise ConnectionError(f"Cannot set up a client in state '{self.state.value}'")

        try:
            await self._setup()
        except ExecutionError as e:
            raise ConnectionError(f"Setup failed: {e.message}", context=e.context) from e

        self.state = ClientState.SET_UP

    async def execute(self, code: str) -> str:
        """
        Run a command string and return its raw standard output.

        Raises:
            ExecutionError: Non-zero exit status or transport failure
        """
        self._require_connected("execute")
        output = await self._shell(self._in_workdir(code))
        if not output.success:
            raise ExecutionError(
                f"Command exited with status {output.exit_code}",
                context=output.to_dict(),
            )
        return output.stdout

    async def action(self, action_type: str, data: Optional[Dict[str, Any]] = None) -> Any:
        """
        Run a named, transport-defined operation.

        Raises:
            UnsupportedActionError: Unknown action for this transport
        """
        self._require_connected("action")
        handler = self._action_handlers().get(action_type)
        if handler is None:
            raise UnsupportedActionError(
                f"Action '{action_type}' is not supported by {self.connection_type.value} clients",
                context={"supported": self.supported_actions},
            )
        return await self._guard(handler(data or {}))

    async def info(self) -> Dict[str, Any]:
        """Return a snapshot of environment metadata."""
        self._require_connected("info")
        return await self._guard(self._info())

    def get_connection(self) -> Dict[str, Any]:
        """Return the descriptor this client was built from. Safe in any state."""
        return self._descriptor.to_dict()

    async def disconnect(self) -> None:
        """Release every session resource. Never raises."""
        if self.state is ClientState.DISCONNECTED:
            return
        self.state = ClientState.DISCONNECTED
        try:
            await self._disconnect()
        except Exception as e:
            self.logger.warning(f"Error while disconnecting from {self.describe()}: {e}")

    @property
    def supported_actions(self) -> List[str]:
        return sorted(self._action_handlers())

    def describe(self) -> str:
        """Short human-readable target name for logs."""
        return self.connection_type.value

    # Transport hooks

    @abc.abstractmethod
    async def _connect(self) -> None:
        ...

    @abc.abstractmethod
    async def _run_shell(self, script: str) -> CommandOutput:
        """Run a POSIX shell script on the target and capture its output."""
        ...

    @abc.abstractmethod
    async def _info(self) -> Dict[str, Any]:
        ...

    @abc.abstractmethod
    async def _disconnect(self) -> None:
        ...

    async def _setup(self) -> None:
        if self.settings.workdir:
            script = f"mkdir -p -- {shlex.quote(self.settings.workdir)}"
        else:
            script = "echo ok"
        output = await self._shell(script)
        if not output.success:
            raise ExecutionError(
                output.stderr.strip() or f"exit status {output.exit_code}",
                context=output.to_dict(),
            )

    def _extra_actions(self) -> Dict[str, ActionHandler]:
        """Transport-specific actions, merged over the shell-backed defaults."""
        return {}

    # Shared helpers

    def _action_handlers(self) -> Dict[str, ActionHandler]:
        handlers: Dict[str, ActionHandler] = {
            "status": self._action_status,
            "read_file": self._action_read_file,
            "list_dir": self._action_list_dir,
        }
        handlers.update(self._extra_actions())
        return handlers

    def _require_connected(self, operation: str) -> None:
        if self.state not in (ClientState.CONNECTED, ClientState.SET_UP):
            raise ExecutionError(
                f"Cannot {operation} on a client in state '{self.state.value}'"
            )

    def _in_workdir(self, code: str) -> str:
        if not self.settings.workdir:
            return code
        return f"cd {shlex.quote(self.settings.workdir)} && {code}"

    async def _shell(self, script: str) -> CommandOutput:
        return await self._guard(self._run_shell(script))

    async def _guard(self, awaitable: Awaitable[Any]) -> Any:
        """Await a transport call, mapping raw I/O failures to ExecutionError."""
        try:
            return await awaitable
        except BrokerError:
            raise
        except asyncio.TimeoutError as e:
            raise ExecutionError(f"Command timed out after {self.timeout}s") from e
        except OSError as e:
            raise ExecutionError(f"Transport error: {e}") from e

    @staticmethod
    def _require_field(data: Dict[str, Any], name: str) -> Any:
        value = data.get(name)
        if value in (None, ""):
            raise ExecutionError(f"Action requires '{name}'")
        return value

    # Shell-backed default actions

    async def _action_status(self, data: Dict[str, Any]) -> Dict[str, Any]:
        start_time = time.monotonic()
        output = await self._shell("echo ok")
        return {
            "alive": output.success and output.stdout.strip() == "ok",
            "type": self.connection_type.value,
            "latency_ms": int((time.monotonic() - start_time) * 1000),
        }

    async def _action_read_file(self, data: Dict[str, Any]) -> str:
        path = self._require_field(data, "path")
        output = await self._shell(self._in_workdir(f"cat -- {shlex.quote(path)}"))
        if not output.success:
            raise ExecutionError(
                f"Failed to read {path}: {output.stderr.strip()}",
                context=output.to_dict(),
            )
        return output.stdout

    async def _action_list_dir(self, data: Dict[str, Any]) -> List[str]:
        path = data.get("path") or "."
        output = await self._shell(self._in_workdir(f"ls -1A -- {shlex.quote(path)}"))
        if not output.success:
            raise ExecutionError(
                f"Failed to list {path}: {output.stderr.strip()}",
                context=output.to_dict(),
            )
        return [line for line in output.stdout.splitlines() if line]

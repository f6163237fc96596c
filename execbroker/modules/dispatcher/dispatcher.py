"""
Request dispatcher.

Drives the same lifecycle for every request kind:

    factory -> connect() -> [setup()] -> operation -> disconnect()

and folds the outcome into the reply shape of that kind. disconnect()
runs on every exit path; a failing disconnect is logged and never
replaces the primary outcome.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Mapping, Optional, Tuple, Union

from execbroker.config.provider import TransportConfig
from execbroker.modules.api.models import (
    ActionReply,
    ActionRequest,
    ConnectReply,
    ConnectRequest,
    Err,
    ErrorInfo,
    ExecuteRequest,
    InfoRequest,
    Ok,
    Result,
)
from execbroker.modules.client import BrokerError, Client, create_client

logger = logging.getLogger("execbroker.dispatcher")

ClientFactory = Callable[[Optional[Mapping[str, Any]], Optional[TransportConfig]], Client]
Operation = Callable[[Client], Awaitable[Any]]


def normalize_output(raw: str) -> str:
    """
    Normalize raw command output.

    Surrounding whitespace is trimmed, then one pair of double quotes
    wrapping the whole result is removed. A lone leading or trailing
    quote is kept.
    """
    result = raw.strip()
    if len(result) >= 2 and result.startswith('"') and result.endswith('"'):
        result = result[1:-1]
    return result


class DispatcherModule:
    def __init__(
        self,
        client_factory: ClientFactory = create_client,
        config: Optional[TransportConfig] = None,
    ):
        """
        Initialize dispatcher.

        Args:
            client_factory: Builds an unconnected client from a raw descriptor
            config: Transport defaults passed to every client
        """
        self.client_factory = client_factory
        self.config = config

    @asynccontextmanager
    async def open_client(self, connection: Optional[Mapping[str, Any]]) -> AsyncIterator[Client]:
        """
        Acquire a fresh client and guarantee its release.

        ConfigurationError from the factory propagates before anything
        needs releasing.
        """
        client = self.client_factory(connection, self.config)
        try:
            yield client
        finally:
            await self._release(client)

    async def _release(self, client: Client) -> None:
        try:
            await client.disconnect()
        except Exception as e:
            logger.warning(f"Ignoring disconnect failure: {e}")

    async def _run(
        self,
        kind: str,
        connection: Optional[Mapping[str, Any]],
        operation: Operation,
    ) -> Tuple[Dict[str, Any], Result]:
        """
        Run one connect -> operation -> disconnect cycle.

        Returns:
            The client's echoed descriptor and an Ok/Err result
        """
        async with self.open_client(connection) as client:
            target = client.describe()
            logger.debug(f"Starting {kind} request on {target}")
            try:
                await client.connect()
                value = await operation(client)
            except BrokerError as e:
                logger.info(f"{kind} request on {target} failed: {e}")
                return client.get_connection(), Err(ErrorInfo.from_exception(e))
            except Exception as e:
                logger.exception(f"Unexpected error during {kind} request on {target}")
                return client.get_connection(), Err(ErrorInfo.from_exception(e))

            logger.info(f"{kind} request on {target} succeeded")
            return client.get_connection(), Ok(value)

    async def connect(self, request: ConnectRequest) -> ConnectReply:
        """Test a connection, running setup() when the caller asks for it."""

        async def operation(client: Client) -> None:
            if request.wants_setup:
                await client.setup()

        connection, result = await self._run("connect", request.connection, operation)
        if isinstance(result, Ok):
            return ConnectReply(connected=True, connection=connection, data=request.data)
        return ConnectReply(
            connected=False,
            connection=connection,
            data=request.data,
            error=result.error,
        )

    async def execute(self, request: ExecuteRequest) -> Union[str, ErrorInfo]:
        """Run code and return the normalized output, or the error."""

        async def operation(client: Client) -> str:
            return normalize_output(await client.execute(request.code))

        _, result = await self._run("execute", request.connection, operation)
        if isinstance(result, Ok):
            return result.value
        return result.error

    async def action(self, request: ActionRequest) -> ActionReply:
        """Run a named action; the reply always echoes the action type."""

        async def operation(client: Client) -> Any:
            return await client.action(request.type, request.data)

        _, result = await self._run("action", request.connection, operation)
        if isinstance(result, Ok):
            return ActionReply(type=request.type, result=result.value)
        return ActionReply(type=request.type, error=result.error)

    async def info(self, request: InfoRequest) -> Union[Dict[str, Any], ErrorInfo]:
        """Fetch environment metadata, folding failures like the other kinds."""

        async def operation(client: Client) -> Dict[str, Any]:
            return await client.info()

        _, result = await self._run("info", request.connection, operation)
        if isinstance(result, Ok):
            return result.value
        return result.error

"""Client factory: maps a connection descriptor to a transport client."""

import logging
from typing import Any, Dict, Mapping, Optional, Type

from pydantic import ValidationError

from execbroker.config.provider import TransportConfig
from execbroker.modules.api.models import ConnectionDescriptor, ConnectionType

from .docker import DockerClient
from .errors import ConfigurationError
from .interface import Client
from .kubectl import KubectlClient
from .local import LocalClient
from .ssh import SSHClient

logger = logging.getLogger("execbroker.client.factory")

CLIENT_TYPES: Dict[ConnectionType, Type[Client]] = {
    ConnectionType.LOCAL: LocalClient,
    ConnectionType.SSH: SSHClient,
    ConnectionType.DOCKER: DockerClient,
    ConnectionType.KUBECTL: KubectlClient,
}

_missing = set(ConnectionType) - set(CLIENT_TYPES)
if _missing:
    raise RuntimeError(f"No client registered for: {sorted(t.value for t in _missing)}")


def parse_descriptor(connection: Optional[Mapping[str, Any]]) -> ConnectionDescriptor:
    """
    Validate a raw connection descriptor.

    Raises:
        ConfigurationError: Descriptor missing, type missing or unknown type
    """
    if not connection:
        raise ConfigurationError("Connection is required")
    if not isinstance(connection, Mapping):
        raise ConfigurationError("Connection must be an object")
    if connection.get("type") in (None, ""):
        raise ConfigurationError("Connection type is required")

    try:
        return ConnectionDescriptor.model_validate(dict(connection))
    except ValidationError as e:
        raise ConfigurationError(
            f"Type not supported: {connection.get('type')!r}",
            context={"supported": [t.value for t in ConnectionType]},
        ) from e


def create_client(
    connection: Optional[Mapping[str, Any]],
    config: Optional[TransportConfig] = None,
) -> Client:
    """
    Build a fresh, unconnected client for a descriptor. Performs no I/O.

    Args:
        connection: Raw connection descriptor
        config: Transport defaults handed to the client

    Returns:
        Client of the variant named by the descriptor's type

    Raises:
        ConfigurationError: Invalid descriptor
    """
    descriptor = parse_descriptor(connection)
    client_cls = CLIENT_TYPES[descriptor.type]
    logger.debug(f"Creating {client_cls.__name__} for {descriptor.type.value} connection")
    return client_cls(descriptor, config)

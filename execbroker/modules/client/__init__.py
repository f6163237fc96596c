"""
Client Module - Black Box Interface

Purpose: Uniform access to local, SSH, Docker and Kubernetes targets
Interface: create_client(), Client.connect/setup/execute/action/info/disconnect
Hidden: Subprocess handling, SSH sessions, Docker API calls, kubectl invocation

Any transport can be replaced without affecting the dispatcher.
"""

from .errors import (
    BrokerError,
    ConfigurationError,
    ConnectionError,
    ExecutionError,
    UnsupportedActionError,
)
from .factory import CLIENT_TYPES, create_client, parse_descriptor
from .interface import Client, ClientState, CommandOutput

__all__ = [
    "BrokerError",
    "CLIENT_TYPES",
    "Client",
    "ClientState",
    "CommandOutput",
    "ConfigurationError",
    "ConnectionError",
    "ExecutionError",
    "UnsupportedActionError",
    "create_client",
    "parse_descriptor",
]

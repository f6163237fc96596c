"""
execbroker shared data models.

These models define the structure of all data passed between the
request/reply channel, the dispatcher and the transports.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

# Enums


class ConnectionType(str, Enum):
    """Transport selected by a connection descriptor."""

    LOCAL = "local"
    SSH = "ssh"
    DOCKER = "docker"
    KUBECTL = "kubectl"


class ErrorKind(str, Enum):
    """Category of a folded error."""

    CONFIGURATION = "configuration"
    CONNECTION = "connection"
    EXECUTION = "execution"
    UNSUPPORTED_ACTION = "unsupported_action"
    INTERNAL = "internal"


# Connection Descriptor


class ConnectionDescriptor(BaseModel):
    """
    Caller-supplied identification of a transport and its target.

    Only ``type`` is interpreted here. Every other field is transport
    specific and is kept verbatim for the transport to parse.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    type: ConnectionType

    def to_dict(self) -> Dict[str, Any]:
        """Return the descriptor as plain JSON-compatible data."""
        return self.model_dump(mode="json")

    @property
    def options(self) -> Dict[str, Any]:
        """Transport-specific fields, without the type tag."""
        return dict(self.model_extra or {})


# Request Models (channel input)


class ConnectRequest(BaseModel):
    """Request to open (and optionally set up) a connection."""

    connection: Optional[Dict[str, Any]] = Field(None, description="Connection descriptor")
    data: Optional[Dict[str, Any]] = Field(
        None, description="Opaque caller data, echoed back unchanged"
    )

    @property
    def wants_setup(self) -> bool:
        return bool(self.data and self.data.get("setup"))


class ExecuteRequest(BaseModel):
    """Request to run a code string on the target."""

    connection: Optional[Dict[str, Any]] = Field(None, description="Connection descriptor")
    code: str = Field(..., description="Command or script to execute")


class ActionRequest(BaseModel):
    """Request to run a named transport action."""

    connection: Optional[Dict[str, Any]] = Field(None, description="Connection descriptor")
    type: str = Field(..., min_length=1, description="Action name")
    data: Optional[Dict[str, Any]] = Field(None, description="Action parameters")


class InfoRequest(BaseModel):
    """Request for environment metadata."""

    connection: Optional[Dict[str, Any]] = Field(None, description="Connection descriptor")


# Response Models (channel output)


class ErrorInfo(BaseModel):
    """Serializable form of a failed operation."""

    kind: ErrorKind = ErrorKind.INTERNAL
    message: str
    details: Optional[Dict[str, Any]] = None

    @classmethod
    def from_exception(cls, error: BaseException) -> "ErrorInfo":
        """Fold any exception into an error reply."""
        try:
            kind = ErrorKind(getattr(error, "kind", ErrorKind.INTERNAL.value))
        except ValueError:
            kind = ErrorKind.INTERNAL
        context = getattr(error, "context", None)
        return cls(
            kind=kind,
            message=str(error) or type(error).__name__,
            details=context if isinstance(context, dict) else None,
        )


class ConnectReply(BaseModel):
    """Reply to a connect request."""

    connected: bool
    connection: Optional[Dict[str, Any]] = None
    data: Optional[Dict[str, Any]] = None
    error: Optional[ErrorInfo] = None


class ActionReply(BaseModel):
    """Reply to an action request, always echoing the action type."""

    type: str
    result: Any = None
    error: Optional[ErrorInfo] = None


# Result type threaded through the dispatcher

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    error: ErrorInfo


Result = Union[Ok[T], Err]

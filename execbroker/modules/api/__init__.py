"""
API Module - Black Box Interface

Purpose: Shared request, reply and descriptor models
Interface: pydantic models and the Ok/Err result type
Hidden: Field validation details

The API module only describes data - it contains no business logic.
"""

from .models import (
    ActionReply,
    ActionRequest,
    ConnectionDescriptor,
    ConnectionType,
    ConnectReply,
    ConnectRequest,
    Err,
    ErrorInfo,
    ErrorKind,
    ExecuteRequest,
    InfoRequest,
    Ok,
    Result,
)

__all__ = [
    "ActionReply",
    "ActionRequest",
    "ConnectionDescriptor",
    "ConnectionType",
    "ConnectReply",
    "ConnectRequest",
    "Err",
    "ErrorInfo",
    "ErrorKind",
    "ExecuteRequest",
    "InfoRequest",
    "Ok",
    "Result",
]

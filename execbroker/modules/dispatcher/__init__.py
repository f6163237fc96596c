"""
Dispatcher Module - Black Box Interface

Purpose: Run connect, execute, action and info requests against a target
Interface: DispatcherModule.connect(), execute(), action(), info()
Hidden: Client lifecycle, guaranteed release, reply normalization

Can be driven by any request/reply channel (HTTP, IPC, message queue).
"""

from .dispatcher import DispatcherModule, normalize_output

__all__ = ["DispatcherModule", "normalize_output"]

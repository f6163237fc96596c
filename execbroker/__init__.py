"""
execbroker - Unified Remote Command Execution Broker

Runs a single operation against a local shell, an SSH host, a Docker
container or a Kubernetes pod, and returns one normalized reply shape.

Architecture:
- Each module is self-contained with clear interfaces
- Transports are completely replaceable
- No module knows the internals of another
- Every request is a fresh connect -> operate -> disconnect cycle

Modules:
- api: Request and reply models
- client: Client interface, transports and the client factory
- dispatcher: Request lifecycle and reply normalization
"""

__version__ = "1.0.0"

"""
Shared pytest fixtures for execbroker tests.

This module provides common fixtures including:
- FakeClient / FakeClientFactory: scriptable clients for dispatcher tests
- KubectlMocker: Mock kubectl subprocess calls with canned responses
"""

import asyncio
import json
import os
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Pattern, Union
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import Field

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from execbroker.modules.api.models import ConnectionType
from execbroker.modules.client import (
    Client,
    CommandOutput,
    ConnectionError,
    ExecutionError,
    parse_descriptor,
)
from execbroker.modules.client.interface import TransportSettings


# =============================================================================
# Fake Client Infrastructure
# =============================================================================

class FakeSettings(TransportSettings):
    """Behaviour switches read from the descriptor of a fake connection."""
    output: str = ""
    stderr: str = ""
    exit_code: int = 0
    fail: Optional[str] = None
    delay: float = 0.0
    info: Dict[str, Any] = Field(default_factory=lambda: {"os": "fake"})


class FakeClient(Client):
    """
    Client whose behaviour is scripted through its descriptor.

    Usage:
        client = FakeClient(parse_descriptor({"type": "local", "fail": "connect"}))

    ``fail`` may name one stage (connect, setup, execute, info, disconnect)
    that raises.
    """

    connection_type = ConnectionType.LOCAL
    settings_model = FakeSettings

    def __init__(self, descriptor, config=None):
        super().__init__(descriptor, config)
        self.calls: List[str] = []
        self.scripts: List[str] = []
        self.disconnect_calls = 0

    async def _connect(self) -> None:
        self.calls.append("connect")
        if self.settings.delay:
            await asyncio.sleep(self.settings.delay)
        if self.settings.fail == "connect":
            raise ConnectionError("target unreachable")

    async def _setup(self) -> None:
        self.calls.append("setup")
        if self.settings.fail == "setup":
            raise ExecutionError("mkdir: permission denied")

    async def _run_shell(self, script: str) -> CommandOutput:
        self.calls.append("execute")
        self.scripts.append(script)
        if self.settings.delay:
            await asyncio.sleep(self.settings.delay)
        if self.settings.fail == "execute":
            raise BrokenPipeError("broken pipe")
        if self.settings.fail == "crash":
            raise RuntimeError("transport bug")
        return CommandOutput(
            exit_code=self.settings.exit_code,
            stdout=self.settings.output,
            stderr=self.settings.stderr,
        )

    async def _info(self) -> Dict[str, Any]:
        self.calls.append("info")
        if self.settings.fail == "info":
            raise ExecutionError("info unavailable")
        return dict(self.settings.info)

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        await super().disconnect()

    async def _disconnect(self) -> None:
        self.calls.append("disconnect")
        if self.settings.fail == "disconnect":
            raise RuntimeError("socket already closed")


class FakeClientFactory:
    """Client factory that builds FakeClients and remembers them."""

    def __init__(self):
        self.clients: List[FakeClient] = []

    def __call__(self, connection, config=None) -> FakeClient:
        descriptor = parse_descriptor(connection)
        client = FakeClient(descriptor, config)
        self.clients.append(client)
        return client

    @property
    def last(self) -> FakeClient:
        return self.clients[-1]


@pytest.fixture
def fake_factory():
    """Provide a fresh FakeClientFactory."""
    return FakeClientFactory()


# =============================================================================
# Kubectl Mocking Infrastructure
# =============================================================================

@dataclass
class KubectlResponse:
    """Represents a mocked kubectl command response."""
    stdout: str = ""
    stderr: str = ""
    returncode: int = 0
    hang: bool = False

    def to_process(self) -> MagicMock:
        """Convert to an asyncio.subprocess.Process-like mock."""
        process = MagicMock()
        process.returncode = self.returncode
        if self.hang:
            async def communicate():
                await asyncio.sleep(3600)
            process.communicate = AsyncMock(side_effect=communicate)
        else:
            process.communicate = AsyncMock(
                return_value=(self.stdout.encode(), self.stderr.encode())
            )
        process.wait = AsyncMock(return_value=self.returncode)
        process.kill = MagicMock()
        return process


@dataclass
class KubectlCall:
    """Record of a kubectl call made during testing."""
    command: List[str]
    full_command_str: str
    matched_pattern: Optional[str] = None
    process: Optional[MagicMock] = None


class KubectlMocker:
    """
    Mock kubectl subprocess calls with pattern-matched responses.

    Intercepts asyncio.create_subprocess_exec so transports can be tested
    without a real Kubernetes cluster.

    Usage:
        async def test_exec(kubectl_mocker):
            kubectl_mocker.register("exec web-0", KubectlResponse(stdout="ok"))
            ...
            assert kubectl_mocker.was_called_with("exec web-0")
    """

    def __init__(self):
        self._responses: List[tuple] = []
        self._call_history: List[KubectlCall] = []
        self._default_response = KubectlResponse(
            stderr="Error: mock not configured for this command",
            returncode=1
        )

    def register(
        self,
        pattern: Union[str, Pattern],
        response: KubectlResponse,
        priority: int = 0
    ) -> "KubectlMocker":
        """
        Register a response for commands matching the pattern.

        Args:
            pattern: String (substring match) or regex pattern
            response: KubectlResponse to return when matched
            priority: Higher priority patterns are checked first

        Returns:
            self for chaining
        """
        self._responses.append((pattern, response, priority))
        self._responses.sort(key=lambda x: x[2], reverse=True)
        return self

    def register_pod(self, name: str = "web-0", phase: str = "Running", **kwargs) -> "KubectlMocker":
        """Register a `get pod <name> -o json` response."""
        return self.register(
            f"get pod {name} -o json",
            KubectlResponse(stdout=json.dumps(pod_json(name=name, phase=phase, **kwargs))),
        )

    async def mock_exec(self, *cmd: str, **kwargs) -> MagicMock:
        """Side effect for patching asyncio.create_subprocess_exec."""
        cmd_str = " ".join(cmd)

        if cmd[0] != "kubectl":
            raise RuntimeError(f"Non-kubectl command blocked: {cmd_str}")

        kubectl_args = " ".join(cmd[1:])
        matched_pattern = None
        response = self._default_response

        for pattern, resp, _ in self._responses:
            if isinstance(pattern, str):
                if pattern in kubectl_args:
                    matched_pattern = pattern
                    response = resp
                    break
            elif pattern.search(kubectl_args):
                matched_pattern = pattern.pattern
                response = resp
                break

        process = response.to_process()
        self._call_history.append(KubectlCall(
            command=list(cmd),
            full_command_str=cmd_str,
            matched_pattern=matched_pattern,
            process=process,
        ))
        return process

    @property
    def calls(self) -> List[KubectlCall]:
        return self._call_history

    @property
    def call_count(self) -> int:
        return len(self._call_history)

    def was_called_with(self, pattern: str) -> bool:
        """Check if any call contained the given pattern."""
        return any(pattern in call.full_command_str for call in self._call_history)

    def get_calls_matching(self, pattern: str) -> List[KubectlCall]:
        return [c for c in self._call_history if pattern in c.full_command_str]


def pod_json(
    name: str = "web-0",
    phase: str = "Running",
    namespace: str = "default",
    node: str = "node-1",
) -> Dict[str, Any]:
    """Minimal `kubectl get pod -o json` document."""
    return {
        "kind": "Pod",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {
            "nodeName": node,
            "containers": [{"name": "app", "image": "nginx:1.25"}],
        },
        "status": {
            "phase": phase,
            "podIP": "10.0.0.12",
            "startTime": "2024-01-01T00:00:00Z",
        },
    }


@pytest.fixture
def kubectl_mocker():
    """
    Fixture that provides a KubectlMocker with asyncio.create_subprocess_exec patched.
    """
    mocker = KubectlMocker()
    with patch("asyncio.create_subprocess_exec", side_effect=mocker.mock_exec):
        yield mocker


# =============================================================================
# Test Markers Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "kubectl_mock: Tests using mocked kubectl subprocess calls"
    )
    config.addinivalue_line(
        "markers", "local_shell: Tests that spawn a real /bin/sh"
    )

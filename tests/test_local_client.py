"""
Local transport tests.

These spawn a real /bin/sh, so they only assume a POSIX host.
"""

import asyncio
import os
import shutil
import time

import pytest

from execbroker.modules.api import ConnectRequest, ErrorInfo, ExecuteRequest, InfoRequest
from execbroker.modules.client import (
    ConnectionError,
    ExecutionError,
    create_client,
)
from execbroker.modules.dispatcher import DispatcherModule

pytestmark = pytest.mark.local_shell


@pytest.fixture
def dispatcher():
    return DispatcherModule()


@pytest.mark.asyncio
async def test_execute_returns_stdout():
    client = create_client({"type": "local"})
    await client.connect()
    try:
        output = await client.execute("echo hello; echo ignored >&2")
    finally:
        await client.disconnect()

    assert output == "hello\n"


@pytest.mark.asyncio
async def test_non_zero_exit_raises():
    client = create_client({"type": "local"})
    await client.connect()
    try:
        with pytest.raises(ExecutionError) as exc_info:
            await client.execute("echo oops >&2; exit 4")
    finally:
        await client.disconnect()

    assert exc_info.value.context["exit_code"] == 4
    assert exc_info.value.context["stderr"] == "oops\n"


@pytest.mark.asyncio
async def test_timeout_kills_process():
    client = create_client({"type": "local", "timeout": 0.2})
    await client.connect()
    try:
        with pytest.raises(ExecutionError, match="timed out"):
            await client.execute("sleep 5")
    finally:
        await client.disconnect()


@pytest.mark.asyncio
async def test_missing_shell_fails_connect():
    client = create_client({"type": "local", "shell": "/definitely/not/a/shell"})

    with pytest.raises(ConnectionError, match="Shell not found"):
        await client.connect()
    await client.disconnect()


@pytest.mark.asyncio
async def test_env_is_passed_to_commands():
    client = create_client({"type": "local", "env": {"BROKER_GREETING": "hi there"}})
    await client.connect()
    try:
        output = await client.execute('printf %s "$BROKER_GREETING"')
    finally:
        await client.disconnect()

    assert output == "hi there"


@pytest.mark.asyncio
async def test_copy_file_action(tmp_path):
    (tmp_path / "source.txt").write_text("payload")
    client = create_client({"type": "local", "workdir": str(tmp_path)})
    await client.connect()
    try:
        result = await client.action(
            "copy_file", {"source": "source.txt", "destination": "copy.txt"}
        )
    finally:
        await client.disconnect()

    assert (tmp_path / "copy.txt").read_text() == "payload"
    assert result["destination"] == str(tmp_path / "copy.txt")


@pytest.mark.asyncio
async def test_copy_missing_file_is_execution_error(tmp_path):
    client = create_client({"type": "local", "workdir": str(tmp_path)})
    await client.connect()
    try:
        with pytest.raises(ExecutionError):
            await client.action("copy_file", {"source": "missing", "destination": "x"})
    finally:
        await client.disconnect()


@pytest.mark.asyncio
async def test_copy_file_does_not_block_event_loop(tmp_path, monkeypatch):
    """Other requests keep running while a large copy is in progress"""
    (tmp_path / "big.bin").write_bytes(b"x")

    def slow_copy(source, destination):
        time.sleep(0.3)
        return destination

    monkeypatch.setattr(shutil, "copy2", slow_copy)
    client = create_client({"type": "local", "workdir": str(tmp_path)})
    await client.connect()

    ticks = []

    async def ticker():
        while True:
            ticks.append(time.monotonic())
            await asyncio.sleep(0.01)

    ticker_task = asyncio.create_task(ticker())
    try:
        await client.action("copy_file", {"source": "big.bin", "destination": "copy.bin"})
    finally:
        ticker_task.cancel()
        await client.disconnect()

    gaps = [later - earlier for earlier, later in zip(ticks, ticks[1:])]
    assert len(ticks) >= 10
    assert max(gaps) < 0.1


@pytest.mark.asyncio
async def test_dispatch_execute_strips_quotes(dispatcher):
    result = await dispatcher.execute(
        ExecuteRequest(connection={"type": "local"}, code="""echo '  "quoted"  '""")
    )

    assert result == "quoted"


@pytest.mark.asyncio
async def test_missing_workdir_fails_connect(tmp_path):
    client = create_client({"type": "local", "workdir": str(tmp_path / "missing")})

    with pytest.raises(ConnectionError, match="Working directory not found"):
        await client.connect()
    await client.disconnect()


@pytest.mark.asyncio
async def test_dispatch_connect_missing_workdir(dispatcher, tmp_path):
    connection = {"type": "local", "workdir": str(tmp_path / "missing")}

    reply = await dispatcher.connect(ConnectRequest(connection=connection, data={"setup": True}))

    assert reply.connected is False
    assert reply.error.kind == "connection"
    assert not (tmp_path / "missing").exists()


@pytest.mark.asyncio
async def test_dispatch_connect_with_setup(dispatcher, tmp_path):
    reply = await dispatcher.connect(
        ConnectRequest(
            connection={"type": "local", "workdir": str(tmp_path)},
            data={"setup": True},
        )
    )

    assert reply.connected is True
    assert reply.error is None


@pytest.mark.asyncio
async def test_dispatch_execute_in_workdir(dispatcher, tmp_path):
    (tmp_path / "marker").write_text("")

    result = await dispatcher.execute(
        ExecuteRequest(connection={"type": "local", "workdir": str(tmp_path)}, code="ls")
    )

    assert result == "marker"


@pytest.mark.asyncio
async def test_dispatch_info(dispatcher):
    result = await dispatcher.info(InfoRequest(connection={"type": "local"}))

    assert result["type"] == "local"
    assert result["os"]
    assert result["cwd"] == os.getcwd()
    assert os.path.basename(result["shell"]) == "sh"


@pytest.mark.asyncio
async def test_dispatch_execute_failure(dispatcher):
    result = await dispatcher.execute(ExecuteRequest(connection={"type": "local"}, code="exit 1"))

    assert isinstance(result, ErrorInfo)
    assert result.kind == "execution"

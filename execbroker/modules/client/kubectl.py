"""
Kubectl transport: execs into a Kubernetes pod by running kubectl.

Uses whatever cluster credentials the local kubectl is configured with;
the descriptor may pick a context, kubeconfig, namespace and container.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

from pydantic import Field

from execbroker.modules.api.models import ConnectionType

from .errors import ConnectionError, ExecutionError
from .interface import ActionHandler, Client, CommandOutput, TransportSettings


class KubectlSettings(TransportSettings):
    pod: str = Field(..., min_length=1, description="Pod name")
    namespace: Optional[str] = Field(None, description="Kubernetes namespace")
    container: Optional[str] = Field(None, description="Container within the pod")
    context: Optional[str] = Field(None, description="kubeconfig context")
    kubeconfig: Optional[str] = Field(None, description="Path to a kubeconfig file")
    shell: str = "/bin/sh"


class KubectlClient(Client):
    """Client for a running Kubernetes pod."""

    connection_type = ConnectionType.KUBECTL
    settings_model = KubectlSettings

    def __init__(self, descriptor, config=None):
        super().__init__(descriptor, config)
        self._pod: Dict[str, Any] = {}

    def describe(self) -> str:
        namespace = self.settings.namespace or "default"
        return f"kubectl://{namespace}/{self.settings.pod}"

    def _global_args(self) -> List[str]:
        args = []
        if self.settings.kubeconfig:
            args.extend(["--kubeconfig", self.settings.kubeconfig])
        if self.settings.context:
            args.extend(["--context", self.settings.context])
        if self.settings.namespace:
            args.extend(["-n", self.settings.namespace])
        return args

    def _container_args(self) -> List[str]:
        return ["-c", self.settings.container] if self.settings.container else []

    async def _run_kubectl(self, args: List[str], timeout: Optional[float] = None) -> CommandOutput:
        """
        Execute kubectl command.

        Args:
            args: kubectl command arguments
            timeout: Seconds before the process is killed

        Returns:
            Captured exit code and output
        """
        cmd = [self.config.kubectl_binary] + self._global_args() + args

        self.logger.debug(f"Running: {' '.join(cmd)}")
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=timeout or self.timeout
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise

        return CommandOutput(
            exit_code=process.returncode,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )

    async def _get_pod(self, error_cls=ExecutionError, timeout: Optional[float] = None) -> Dict[str, Any]:
        output = await self._run_kubectl(
            ["get", "pod", self.settings.pod, "-o", "json"], timeout=timeout
        )
        if not output.success:
            raise error_cls(
                f"Cannot get pod {self.describe()}: {output.stderr.strip()}",
                context=output.to_dict(),
            )
        try:
            return json.loads(output.stdout)
        except ValueError as e:
            raise error_cls(f"Unexpected kubectl output for {self.describe()}") from e

    async def _connect(self) -> None:
        self._pod = await self._get_pod(ConnectionError, timeout=self.connect_timeout)

        phase = self._pod.get("status", {}).get("phase")
        if phase != "Running":
            raise ConnectionError(f"Pod {self.describe()} is not running (phase: {phase})")

    async def _run_shell(self, script: str) -> CommandOutput:
        return await self._run_kubectl(
            ["exec", self.settings.pod]
            + self._container_args()
            + ["--", self.settings.shell, "-c", script]
        )

    async def _info(self) -> Dict[str, Any]:
        pod = await self._get_pod()
        metadata = pod.get("metadata", {})
        spec = pod.get("spec", {})
        status = pod.get("status", {})
        return {
            "type": self.connection_type.value,
            "pod": metadata.get("name", self.settings.pod),
            "namespace": metadata.get("namespace", self.settings.namespace),
            "phase": status.get("phase"),
            "node": spec.get("nodeName"),
            "pod_ip": status.get("podIP"),
            "start_time": status.get("startTime"),
            "containers": [
                {"name": container.get("name"), "image": container.get("image")}
                for container in spec.get("containers", [])
            ],
        }

    async def _disconnect(self) -> None:
        self._pod = {}

    def _extra_actions(self) -> Dict[str, ActionHandler]:
        return {
            "logs": self._action_logs,
            "describe": self._action_describe,
        }

    async def _action_logs(self, data: Dict[str, Any]) -> str:
        tail = int(data.get("tail", 100))
        output = await self._run_kubectl(
            ["logs", self.settings.pod] + self._container_args() + [f"--tail={tail}"]
        )
        return self._checked(output, "logs")

    async def _action_describe(self, data: Dict[str, Any]) -> str:
        output = await self._run_kubectl(["describe", "pod", self.settings.pod])
        return self._checked(output, "describe")

    def _checked(self, output: CommandOutput, verb: str) -> str:
        if not output.success:
            raise ExecutionError(
                f"kubectl {verb} failed for {self.describe()}: {output.stderr.strip()}",
                context=output.to_dict(),
            )
        return output.stdout

"""Configuration provider following Black Box Design principles."""
import os
from dataclasses import dataclass, field
from typing import List, Optional, Protocol


@dataclass
class APIConfig:
    """API configuration."""
    port: int
    host: str
    debug: bool
    log_level: str
    api_keys: List[str] = field(default_factory=list)

    @property
    def require_auth(self) -> bool:
        """API key checks are only enforced when keys are configured."""
        return bool(self.api_keys)


@dataclass
class TransportConfig:
    """Defaults shared by every transport."""
    command_timeout: float = 30.0
    connect_timeout: float = 10.0
    shell: str = "/bin/sh"
    kubectl_binary: str = "kubectl"
    docker_socket: str = "/var/run/docker.sock"
    ssh_known_hosts: Optional[str] = None
    ssh_verify_host_keys: bool = True


class ConfigProvider(Protocol):
    """Protocol for configuration providers."""

    def get_api_config(self) -> APIConfig:
        """Get API configuration."""
        ...

    def get_transport_config(self) -> TransportConfig:
        """Get transport configuration."""
        ...


class EnvConfigProvider:
    """Environment-based configuration provider."""

    def get_api_config(self) -> APIConfig:
        """Get API configuration from environment variables."""
        api_keys_env = os.getenv("API_KEYS", "")
        return APIConfig(
            port=int(os.getenv("API_PORT", "8080")),
            host=os.getenv("API_HOST", "127.0.0.1"),
            debug=os.getenv("API_DEBUG", "false").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            api_keys=[key.strip() for key in api_keys_env.split(",") if key.strip()],
        )

    def get_transport_config(self) -> TransportConfig:
        """Get transport configuration from environment variables."""
        return TransportConfig(
            command_timeout=float(os.getenv("EXECBROKER_COMMAND_TIMEOUT", "30")),
            connect_timeout=float(os.getenv("EXECBROKER_CONNECT_TIMEOUT", "10")),
            shell=os.getenv("EXECBROKER_SHELL", "/bin/sh"),
            kubectl_binary=os.getenv("EXECBROKER_KUBECTL", "kubectl"),
            docker_socket=os.getenv("EXECBROKER_DOCKER_SOCKET", "/var/run/docker.sock"),
            ssh_known_hosts=os.getenv("EXECBROKER_SSH_KNOWN_HOSTS") or None,
            ssh_verify_host_keys=os.getenv(
                "EXECBROKER_SSH_VERIFY_HOST_KEYS", "true"
            ).lower() == "true",
        )

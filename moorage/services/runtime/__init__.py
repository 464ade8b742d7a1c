"""Container runtime clients."""
from moorage.services.runtime.base import ContainerInfo, ContainerRuntime, RuntimeClientError
from moorage.services.runtime.docker_cli import DockerCLIRuntime

__all__ = [
    'ContainerInfo',
    'ContainerRuntime',
    'DockerCLIRuntime',
    'RuntimeClientError',
]

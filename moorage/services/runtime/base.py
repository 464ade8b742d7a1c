"""Abstract interface for container runtimes."""
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import BinaryIO, Dict, List, Optional, Sequence


class RuntimeClientError(Exception):
    """Raised when a runtime command fails."""
    pass


@dataclass
class ContainerInfo:
    """A container as reported by the runtime."""
    id: str
    name: str
    image: str = ""
    state: str = ""
    labels: Dict[str, str] = field(default_factory=dict)

    @property
    def running(self) -> bool:
        return self.state == "running"


class ContainerRuntime(ABC):
    """Capabilities Moorage needs from a container runtime.

    Implementations must not leak transport details: every failure surfaces
    as RuntimeClientError.
    """

    @abstractmethod
    def list_volumes(self) -> List[str]:
        """Return the names of all volumes."""

    @abstractmethod
    def list_containers(self, all: bool = False) -> List[ContainerInfo]:
        """List containers.

        Args:
            all: Include stopped containers
        """

    @abstractmethod
    def create_helper(
        self,
        name: str,
        image: str,
        volume: str,
        mount_point: str,
        command: Optional[Sequence[str]] = None,
    ) -> str:
        """Create (but don't start) a container with ``volume`` at ``mount_point``.

        Returns:
            Container ID
        """

    @abstractmethod
    def start_container(self, container_id: str) -> None:
        """Start a container by ID or name."""

    @abstractmethod
    def stop_container(self, container_id: str, timeout: int = 10) -> None:
        """Stop a container by ID or name."""

    @abstractmethod
    def remove_container(self, container_id: str, force: bool = True) -> None:
        """Remove a container."""

    @abstractmethod
    def copy_from(self, container_id: str, path: str) -> AbstractContextManager:
        """Stream ``path`` out of a container as an uncompressed tar.

        Returns:
            Context manager yielding a readable binary stream. Exiting the
            context raises RuntimeClientError if the copy failed.
        """

    @abstractmethod
    def copy_to(self, container_id: str, path: str, stream: BinaryIO) -> None:
        """Extract an uncompressed tar stream into ``path`` inside a container."""

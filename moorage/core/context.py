"""Capabilities shared by every operation, built once at startup."""
from dataclasses import dataclass
from typing import Optional

from moorage.core.config import MoorageConfig
from moorage.core.state_store import StateStore
from moorage.core.volume_access import VolumeAccessor, select_accessor
from moorage.services.notify import Notifier, build_notifier
from moorage.services.runtime.base import ContainerRuntime
from moorage.services.runtime.docker_cli import DockerCLIRuntime


@dataclass
class ServiceContext:
    """Configuration plus the collaborators operations run against."""
    config: MoorageConfig
    runtime: ContainerRuntime
    accessor: VolumeAccessor
    notifier: Notifier
    state_store: StateStore


def build_context(
    config: MoorageConfig,
    runtime: Optional[ContainerRuntime] = None,
    accessor: Optional[VolumeAccessor] = None,
    notifier: Optional[Notifier] = None,
) -> ServiceContext:
    """Wire up a ServiceContext, defaulting to the docker CLI runtime."""
    if runtime is None:
        runtime = DockerCLIRuntime(
            host=config.docker_host,
            context=config.docker_context,
            timeout=config.command_timeout,
        )
    if accessor is None:
        accessor = select_accessor(config, runtime)
    if notifier is None:
        notifier = build_notifier(config.hook_script, config.webhook_url)

    return ServiceContext(
        config=config,
        runtime=runtime,
        accessor=accessor,
        notifier=notifier,
        state_store=StateStore(),
    )

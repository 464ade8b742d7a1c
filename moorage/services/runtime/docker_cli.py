"""
Docker runtime backed by the docker CLI.

Supports both local and remote Docker hosts via --host/--context. The CLI
approach keeps remote daemons (ssh://, tcp://) working without extra
client libraries.
"""

import json
import shutil
import subprocess
from contextlib import contextmanager
from typing import BinaryIO, Dict, Iterator, List, Optional, Sequence

from moorage.core.logger import get_logger
from moorage.services.runtime.base import ContainerInfo, ContainerRuntime, RuntimeClientError

logger = get_logger(__name__)

_CHUNK_SIZE = 1024 * 1024


def parse_labels(raw: str) -> Dict[str, str]:
    """Parse docker's ``k=v,k2=v2`` label listing."""
    labels = {}
    for item in (raw or "").split(','):
        if not item:
            continue
        key, _, value = item.partition('=')
        labels[key.strip()] = value
    return labels


class DockerCLIRuntime(ContainerRuntime):
    """ContainerRuntime implemented with ``docker`` subprocess calls."""

    def __init__(self, host: Optional[str] = None, context: Optional[str] = None,
                 timeout: int = 60, binary: str = 'docker'):
        """
        Args:
            host: Docker host URL (tcp://host:2375, ssh://user@host)
                  If None, uses default Docker socket
            context: Docker context name to use
            timeout: Timeout in seconds for non-streaming commands
            binary: docker executable
        """
        self.host = host
        self.context = context
        self.timeout = timeout
        self.binary = binary

    def _command(self, args: Sequence[str]) -> List[str]:
        cmd = [self.binary]

        # Add host or context
        if self.context:
            cmd.extend(['--context', self.context])
        elif self.host:
            cmd.extend(['--host', self.host])

        cmd.extend(args)
        return cmd

    def _run_docker(self, args: Sequence[str]) -> str:
        """
        Run a docker command and return its stdout.

        Raises:
            RuntimeClientError: On non-zero exit, timeout or missing binary
        """
        cmd = self._command(args)
        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=True,
                timeout=self.timeout
            )
        except subprocess.CalledProcessError as e:
            raise RuntimeClientError(f"docker {args[0]} failed: {(e.stderr or '').strip()}") from e
        except subprocess.TimeoutExpired as e:
            raise RuntimeClientError(f"docker {args[0]} timed out after {self.timeout}s") from e
        except OSError as e:
            raise RuntimeClientError(f"Unable to run {self.binary}: {e}") from e

        return result.stdout.strip()

    def list_volumes(self) -> List[str]:
        output = self._run_docker(['volume', 'ls', '--format', '{{.Name}}'])
        return [line.strip() for line in output.splitlines() if line.strip()]

    def list_containers(self, all: bool = False) -> List[ContainerInfo]:
        args = ['ps', '--no-trunc', '--format', '{{json .}}']
        if all:
            args.append('--all')

        output = self._run_docker(args)

        containers = []
        for line in output.splitlines():
            if not line.strip():
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError:
                logger.warning(f"Skipping unparseable docker ps line: {line[:80]}")
                continue
            containers.append(ContainerInfo(
                id=data.get('ID', ''),
                name=data.get('Names', '').split(',')[0],
                image=data.get('Image', ''),
                state=data.get('State', ''),
                labels=parse_labels(data.get('Labels', '')),
            ))

        return containers

    def create_helper(self, name, image, volume, mount_point, command=None) -> str:
        args = ['create', '--name', name, '--label', 'moorage.helper=true',
                '--volume', f'{volume}:{mount_point}', image]
        args.extend(command or [])
        return self._run_docker(args)

    def start_container(self, container_id: str) -> None:
        self._run_docker(['start', container_id])

    def stop_container(self, container_id: str, timeout: int = 10) -> None:
        self._run_docker(['stop', '--time', str(timeout), container_id])

    def remove_container(self, container_id: str, force: bool = True) -> None:
        args = ['rm']
        if force:
            args.append('--force')
        args.append(container_id)
        self._run_docker(args)

    @contextmanager
    def copy_from(self, container_id: str, path: str) -> Iterator[BinaryIO]:
        cmd = self._command(['cp', f'{container_id}:{path}', '-'])
        try:
            proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except OSError as e:
            raise RuntimeClientError(f"Unable to run {self.binary}: {e}") from e

        completed = False
        try:
            yield proc.stdout
            # Drain trailing tar padding so docker doesn't die on a closed pipe
            while proc.stdout.read(_CHUNK_SIZE):
                pass
            completed = True
        finally:
            if not completed:
                proc.kill()
            proc.stdout.close()
            stderr = proc.stderr.read().decode(errors='replace')
            proc.stderr.close()
            returncode = proc.wait()

        if returncode != 0:
            raise RuntimeClientError(f"docker cp from {container_id}:{path} failed: {stderr.strip()}")

    def copy_to(self, container_id: str, path: str, stream: BinaryIO) -> None:
        cmd = self._command(['cp', '-', f'{container_id}:{path}'])
        try:
            proc = subprocess.Popen(cmd, stdin=subprocess.PIPE,
                                    stdout=subprocess.DEVNULL, stderr=subprocess.PIPE)
        except OSError as e:
            raise RuntimeClientError(f"Unable to run {self.binary}: {e}") from e

        try:
            shutil.copyfileobj(stream, proc.stdin, _CHUNK_SIZE)
        except BrokenPipeError:
            # docker exited early; the exit status below carries the reason
            pass
        except BaseException:
            proc.kill()
            raise
        finally:
            try:
                proc.stdin.close()
            except BrokenPipeError:
                pass
            stderr = proc.stderr.read().decode(errors='replace')
            proc.stderr.close()
            returncode = proc.wait()

        if returncode != 0:
            raise RuntimeClientError(f"docker cp to {container_id}:{path} failed: {stderr.strip()}")

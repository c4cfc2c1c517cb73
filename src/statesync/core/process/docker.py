"""
Docker-based process supervisor.

Runs sandbox commands inside an already running container with
``docker exec``, so the sync can be driven from the host while the data
lives in the container's filesystem.
"""

import shlex
import shutil
import subprocess

from .local import LocalSupervisor
from .supervisor import SupervisorError, register_supervisor


@register_supervisor("docker")
class DockerExecSupervisor(LocalSupervisor):
    """
    Supervisor for commands running inside a Docker container.

    The supervised process is the local ``docker exec`` client. Terminating
    it on shutdown does not necessarily stop the command inside the
    container.
    """

    @property
    def name(self) -> str:
        return "docker"

    @property
    def container(self) -> str | None:
        return self.config.container

    def is_available(self) -> bool:
        """
        Check that the docker CLI exists and the target container is running.

        Returns:
            True if commands can be executed in the container
        """
        if not self.container or not shutil.which("docker"):
            return False

        try:
            result = subprocess.run(
                ["docker", "inspect", "--format", "{{.State.Running}}", self.container],
                capture_output=True,
                text=True,
                timeout=10,
            )
        except (subprocess.TimeoutExpired, OSError):
            return False
        return result.returncode == 0 and result.stdout.strip() == "true"

    def _wrap(self, command: str, env_names: list[str] | None = None) -> str:
        if not self.container:
            raise SupervisorError("The docker supervisor needs a container name", command=command)
        # `-e NAME` without a value forwards it from the client's environment,
        # so values never appear in the host's process list
        env_flags = "".join(f" -e {shlex.quote(name)}" for name in env_names or [])
        return (
            f"docker exec{env_flags} {shlex.quote(self.container)} sh -c {shlex.quote(command)}"
        )

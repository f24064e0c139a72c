"""Container runtime client backed by the docker CLI.

This is the only module that mutates container state. Every call is a
single synchronous-from-the-caller's-view command: it either reaches the
expected state or raises and leaves the container unchanged.
"""

from __future__ import annotations

import asyncio
import json
import shlex
from collections.abc import Mapping
from typing import Any

from swapdeploy.constants import DEFAULT_COMMAND_TIMEOUT, DEFAULT_PULL_TIMEOUT
from swapdeploy.errors import (
    ContainerNotFound,
    ImagePullFailed,
    PruneFailed,
    RuntimeCommandError,
    StartFailed,
)
from swapdeploy.logging import get_logger
from swapdeploy.models import ContainerInstance, InstanceStatus

log = get_logger("swapdeploy.runtime")

_NO_SUCH_CONTAINER = "no such container"


class CommandResult:
    """Captured output of one runtime command."""

    __slots__ = ("cmd", "returncode", "stdout", "stderr", "timed_out")

    def __init__(
        self,
        cmd: str,
        returncode: int | None,
        stdout: str = "",
        stderr: str = "",
        timed_out: bool = False,
    ) -> None:
        self.cmd = cmd
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.timed_out = timed_out

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    def error_text(self) -> str:
        if self.timed_out:
            return "timed out"
        return self.stderr.strip()[:500] or f"exit status {self.returncode}"


class DockerRuntime:
    """Pull, run, stop/remove, inspect and prune via ``docker``."""

    def __init__(
        self,
        docker_binary: str = "docker",
        pull_timeout: int = DEFAULT_PULL_TIMEOUT,
        command_timeout: int = DEFAULT_COMMAND_TIMEOUT,
    ) -> None:
        self._docker = docker_binary
        self._pull_timeout = pull_timeout
        self._command_timeout = command_timeout

    # ------------------------------------------------------------------
    # Image operations
    # ------------------------------------------------------------------

    async def pull(self, image: str) -> None:
        """Pull *image* into the local cache."""
        result = await self._run_cmd(["pull", image], timeout=self._pull_timeout)
        if not result.ok:
            raise ImagePullFailed(
                f"Failed to pull {image}: {result.error_text()}",
                cmd=result.cmd,
                returncode=result.returncode,
                stderr=result.stderr,
            )
        log.info("runtime_image_pulled", image=image)

    async def prune_images(self, label_filter: str | None = None) -> None:
        """Remove dangling images, optionally only those matching a label."""
        args = ["image", "prune", "--force"]
        if label_filter:
            args += ["--filter", f"label={label_filter}"]
        result = await self._run_cmd(args)
        if not result.ok:
            raise PruneFailed(
                f"Image prune failed: {result.error_text()}",
                cmd=result.cmd,
                returncode=result.returncode,
                stderr=result.stderr,
            )
        log.debug("runtime_images_pruned", label_filter=label_filter)

    # ------------------------------------------------------------------
    # Container operations
    # ------------------------------------------------------------------

    async def start_detached(
        self,
        name: str,
        image: str,
        port_mapping: tuple[int, int] | None = None,
        restart_policy: str | None = None,
        labels: Mapping[str, str] | None = None,
    ) -> ContainerInstance:
        """Create and start a detached container named *name*.

        Without *port_mapping* nothing is published on the host and the
        container is reachable only on its internal network address.
        """
        args = ["run", "--detach", "--name", name]
        if port_mapping is not None:
            host_port, container_port = port_mapping
            args += ["--publish", f"{host_port}:{container_port}"]
        if restart_policy:
            args += ["--restart", restart_policy]
        for key, value in (labels or {}).items():
            args += ["--label", f"{key}={value}"]
        args.append(image)

        result = await self._run_cmd(args)
        if not result.ok:
            raise StartFailed(
                f"Failed to start {name} from {image}: {result.error_text()}",
                cmd=result.cmd,
                returncode=result.returncode,
                stderr=result.stderr,
            )
        log.info("runtime_container_started", name=name, image=image, ports=port_mapping)
        return ContainerInstance(name=name, image=image, status=InstanceStatus.RUNNING)

    async def inspect(self, name: str) -> ContainerInstance:
        """Return the current view of container *name*."""
        result = await self._run_cmd(["container", "inspect", name])
        if not result.ok:
            raise ContainerNotFound(
                f"Container {name} not found: {result.error_text()}",
                cmd=result.cmd,
                returncode=result.returncode,
                stderr=result.stderr,
            )
        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise RuntimeCommandError(
                f"Unreadable inspect output for {name}", cmd=result.cmd
            ) from exc
        if not isinstance(data, list) or not data:
            raise ContainerNotFound(f"Container {name} not found", cmd=result.cmd)
        return self._parse_inspect(name, data[0])

    async def stop_and_remove(self, name: str) -> None:
        """Stop and remove container *name*. An absent container is success."""
        for args in (["stop", name], ["rm", "--force", name]):
            result = await self._run_cmd(args)
            if result.ok:
                continue
            if _NO_SUCH_CONTAINER in result.stderr.lower():
                log.debug("runtime_container_absent", name=name, step=args[0])
                return
            raise RuntimeCommandError(
                f"Failed to {args[0]} {name}: {result.error_text()}",
                cmd=result.cmd,
                returncode=result.returncode,
                stderr=result.stderr,
            )
        log.info("runtime_container_removed", name=name)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_inspect(name: str, data: dict[str, Any]) -> ContainerInstance:
        state = data.get("State") or {}
        running = bool(state.get("Running"))
        address: str | None = None
        if running:
            network = data.get("NetworkSettings") or {}
            address = network.get("IPAddress") or None
            if address is None:
                for attached in (network.get("Networks") or {}).values():
                    if attached and attached.get("IPAddress"):
                        address = attached["IPAddress"]
                        break
        config = data.get("Config") or {}
        return ContainerInstance(
            name=name,
            image=str(config.get("Image", "")),
            status=InstanceStatus.RUNNING if running else InstanceStatus.STOPPED,
            address=address,
        )

    async def _run_cmd(self, args: list[str], timeout: int | None = None) -> CommandResult:
        """Run a docker command and capture its output."""
        cmd = shlex.join([self._docker, *args])
        timeout = timeout or self._command_timeout
        log.debug("runtime_cmd", cmd=cmd)
        try:
            proc = await asyncio.create_subprocess_shell(
                cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            log.warning("runtime_cmd_error", cmd=cmd, error=str(exc))
            return CommandResult(cmd, None, stderr=str(exc))

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except TimeoutError:
            proc.kill()
            await proc.wait()
            log.warning("runtime_cmd_timeout", cmd=cmd, timeout=timeout)
            return CommandResult(cmd, None, timed_out=True)

        result = CommandResult(
            cmd,
            proc.returncode,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )
        if not result.ok:
            log.warning(
                "runtime_cmd_failed",
                cmd=cmd,
                returncode=proc.returncode,
                stderr=result.stderr[:500],
            )
        return result

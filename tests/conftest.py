"""Shared fixtures: an in-memory container runtime and request builders."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock

import pytest
import structlog

from swapdeploy.errors import (
    ContainerNotFound,
    ImagePullFailed,
    PruneFailed,
    RuntimeCommandError,
    StartFailed,
)
from swapdeploy.models import ContainerInstance, DeploymentRequest, HealthVerdict, InstanceStatus


class FakeRuntime:
    """Tracks containers by name the way the docker daemon would.

    ``calls`` records every command in order. ``stable_seen_running`` records,
    at every command, whether the watched stable container was running.
    """

    def __init__(self, watch: str | None = None) -> None:
        self.containers: dict[str, ContainerInstance] = {}
        self.ports: dict[str, tuple[int, int] | None] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.stable_seen_running: list[bool] = []
        self.fail_pull = False
        self.fail_start: set[str] = set()
        self.fail_remove: set[str] = set()
        self.fail_prune = False
        self.candidate_exits_on_start = False
        self._watch = watch
        self._next_ip = 2

    def add_running(self, name: str, image: str, port_mapping: tuple[int, int] | None = None):
        self.containers[name] = ContainerInstance(
            name=name,
            image=image,
            status=InstanceStatus.RUNNING,
            address=self._allocate_ip(),
        )
        self.ports[name] = port_mapping

    def _allocate_ip(self) -> str:
        ip = f"172.17.0.{self._next_ip}"
        self._next_ip += 1
        return ip

    def _observe(self, *call: Any) -> None:
        self.calls.append(call)
        if self._watch is not None:
            watched = self.containers.get(self._watch)
            self.stable_seen_running.append(watched is not None and watched.running)

    def names_touched(self) -> set[str]:
        """Container names passed to any command other than pull/prune."""
        return {c[1] for c in self.calls if c[0] in ("start", "inspect", "remove")}

    async def pull(self, image: str) -> None:
        self._observe("pull", image)
        if self.fail_pull:
            raise ImagePullFailed(f"Failed to pull {image}: network unreachable")

    async def start_detached(
        self,
        name: str,
        image: str,
        port_mapping: tuple[int, int] | None = None,
        restart_policy: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> ContainerInstance:
        self._observe("start", name, image, port_mapping, restart_policy)
        if name in self.fail_start:
            raise StartFailed(f"Failed to start {name}")
        if name in self.containers:
            raise StartFailed(f"Conflict: container name {name} already in use")
        status = InstanceStatus.RUNNING
        address: str | None = self._allocate_ip()
        if self.candidate_exits_on_start and port_mapping is None:
            status, address = InstanceStatus.STOPPED, None
        self.containers[name] = ContainerInstance(
            name=name, image=image, status=status, address=address
        )
        self.ports[name] = port_mapping
        return self.containers[name]

    async def inspect(self, name: str) -> ContainerInstance:
        self._observe("inspect", name)
        if name not in self.containers:
            raise ContainerNotFound(f"Container {name} not found")
        return self.containers[name]

    async def stop_and_remove(self, name: str) -> None:
        self._observe("remove", name)
        if name in self.fail_remove:
            raise RuntimeCommandError(f"Failed to stop {name}")
        self.containers.pop(name, None)
        self.ports.pop(name, None)

    async def prune_images(self, label_filter: str | None = None) -> None:
        self._observe("prune", label_filter)
        if self.fail_prune:
            raise PruneFailed("Image prune failed")


def make_request(**overrides: Any) -> DeploymentRequest:
    """Return a valid request for service ``svc`` with fast, overridable defaults."""
    data: dict[str, Any] = {
        "image": "svc:abc123",
        "service_name": "svc",
        "stable_name": "svc-stable",
        "candidate_name": "svc-candidate",
        "host_port": 80,
        "app_port": 8080,
        "health_path": "/health",
        "max_retries": 3,
        "retry_interval": 5.0,
        "probe_timeout": 2.0,
    }
    data.update(overrides)
    return DeploymentRequest(**data)


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Keep structlog configuration from leaking between tests."""
    yield
    structlog.reset_defaults()


@pytest.fixture()
def runtime() -> FakeRuntime:
    return FakeRuntime(watch="svc-stable")


@pytest.fixture()
def healthy_prober() -> AsyncMock:
    prober = AsyncMock()
    prober.probe = AsyncMock(return_value=HealthVerdict.ok())
    return prober


@pytest.fixture()
def unhealthy_prober() -> AsyncMock:
    prober = AsyncMock()
    prober.probe = AsyncMock(return_value=HealthVerdict.failed("status_503", status_code=503))
    return prober

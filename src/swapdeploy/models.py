"""Data model for a deployment run: request, instances, verdicts, outcome."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from swapdeploy.constants import CANDIDATE_SUFFIX


class DeploymentState(Enum):
    """States of the swap-and-verify state machine."""

    IDLE = "idle"
    PULLING = "pulling"
    STARTING_CANDIDATE = "starting_candidate"
    HEALTH_CHECKING = "health_checking"
    PROMOTING = "promoting"
    ROLLING_BACK = "rolling_back"
    PROMOTED = "promoted"
    ROLLED_BACK = "rolled_back"


class OutcomeStatus(Enum):
    """Terminal status of a deployment run."""

    PROMOTED = "promoted"
    ROLLED_BACK = "rolled_back"


class FailureCause(Enum):
    """Why a run ended rolled back."""

    IMAGE_PULL_FAILED = "ImagePullFailed"
    START_FAILED = "StartFailed"
    HEALTH_CHECK_EXHAUSTED = "HealthCheckExhausted"
    DEPLOYMENT_IN_PROGRESS = "DeploymentInProgress"


class InstanceStatus(Enum):
    """Runtime status of a named container."""

    RUNNING = "running"
    STOPPED = "stopped"
    ABSENT = "absent"


def _require_text(name: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} must be a non-empty string")
    return value


def _require_port(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 65535:
        raise ValueError(f"{name} must be a port number between 1 and 65535")
    return value


@dataclass(frozen=True)
class DeploymentRequest:
    """Immutable input for one deployment run.

    Validation runs on construction so an invalid request is rejected
    before any container command is issued.
    """

    image: str
    service_name: str
    stable_name: str
    candidate_name: str
    host_port: int
    app_port: int
    health_path: str
    max_retries: int
    retry_interval: float
    probe_timeout: float
    restart_policy: str | None = None
    labels: Mapping[str, str] = field(default_factory=dict)
    prune_label: str | None = None

    def __post_init__(self) -> None:
        _require_text("image", self.image)
        _require_text("service_name", self.service_name)
        _require_text("stable_name", self.stable_name)
        _require_text("candidate_name", self.candidate_name)
        if self.stable_name == self.candidate_name:
            raise ValueError("candidate_name must differ from stable_name")
        _require_port("host_port", self.host_port)
        _require_port("app_port", self.app_port)
        _require_text("health_path", self.health_path)
        if not self.health_path.startswith("/"):
            raise ValueError("health_path must start with '/'")
        if isinstance(self.max_retries, bool) or not isinstance(self.max_retries, int):
            raise ValueError("max_retries must be an integer")
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.probe_timeout <= 0:
            raise ValueError("probe_timeout must be positive")
        if self.retry_interval < 0:
            raise ValueError("retry_interval must not be negative")
        # Freeze the label mapping so the request stays immutable.
        object.__setattr__(self, "labels", dict(self.labels))

    @property
    def port_mapping(self) -> tuple[int, int]:
        """Host port to container port binding for the promoted instance."""
        return (self.host_port, self.app_port)

    @property
    def worst_case_check_seconds(self) -> float:
        """Upper bound on time spent health checking a candidate."""
        return self.max_retries * (self.probe_timeout + self.retry_interval)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DeploymentRequest:
        """Build a request from a mapping.

        ``stable_name`` defaults to the service name and ``candidate_name``
        to ``<service>-candidate``. Raises ``ValueError`` on missing fields.
        """
        service_name = data.get("service_name", "")
        _require_text("service_name", service_name)
        required = (
            "image",
            "host_port",
            "app_port",
            "health_path",
            "max_retries",
            "retry_interval",
            "probe_timeout",
        )
        for key in required:
            if data.get(key) in (None, ""):
                raise ValueError(f"{key} is required")

        return cls(
            image=data["image"],
            service_name=service_name,
            stable_name=data.get("stable_name") or service_name,
            candidate_name=data.get("candidate_name") or f"{service_name}{CANDIDATE_SUFFIX}",
            host_port=data["host_port"],
            app_port=data["app_port"],
            health_path=data["health_path"],
            max_retries=data["max_retries"],
            retry_interval=data["retry_interval"],
            probe_timeout=data["probe_timeout"],
            restart_policy=data.get("restart_policy"),
            labels=data.get("labels") or {},
            prune_label=data.get("prune_label"),
        )


@dataclass(frozen=True)
class ContainerInstance:
    """A named container as seen by the runtime."""

    name: str
    image: str = ""
    status: InstanceStatus = InstanceStatus.ABSENT
    address: str | None = None

    @property
    def running(self) -> bool:
        return self.status is InstanceStatus.RUNNING


@dataclass(frozen=True)
class HealthVerdict:
    """Result of a single health probe."""

    healthy: bool
    reason: str | None = None
    status_code: int | None = None

    @classmethod
    def ok(cls, status_code: int = 200) -> HealthVerdict:
        return cls(healthy=True, status_code=status_code)

    @classmethod
    def failed(cls, reason: str, status_code: int | None = None) -> HealthVerdict:
        return cls(healthy=False, reason=reason, status_code=status_code)


@dataclass(frozen=True)
class DeploymentOutcome:
    """Terminal result of one run, consumed by the invoking pipeline."""

    status: OutcomeStatus
    message: str
    image: str
    service_name: str
    cause: FailureCause | None = None
    probe_attempts: int = 0
    last_probe_reason: str | None = None
    steps_completed: tuple[str, ...] = ()
    duration_seconds: float = 0.0
    completed_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.PROMOTED

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "cause": self.cause.value if self.cause else None,
            "message": self.message,
            "image": self.image,
            "service_name": self.service_name,
            "probe_attempts": self.probe_attempts,
            "last_probe_reason": self.last_probe_reason,
            "steps_completed": list(self.steps_completed),
            "duration_seconds": self.duration_seconds,
            "completed_at": self.completed_at,
        }

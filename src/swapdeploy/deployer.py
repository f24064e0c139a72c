"""Deployment state machine: swap in a new image only after it proves healthy.

Lifecycle:
1. Pull the target image
2. Start a candidate container beside the stable one, without a host port
3. Probe the candidate's health endpoint a bounded number of times
4. Healthy: replace the stable container with a fresh one bound to the
   production port, then prune images
5. Unhealthy or failed earlier: discard the candidate, never touch stable

Steps 1-3 fail into a rolled-back outcome. A failure during step 4 raises
``PromotionFailed`` because the stable container may already be gone.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field

from swapdeploy.config import Settings
from swapdeploy.errors import PromotionFailed, PruneFailed, RuntimeCommandError
from swapdeploy.health import HealthProber
from swapdeploy.logging import deployment_context, get_logger
from swapdeploy.models import (
    DeploymentOutcome,
    DeploymentRequest,
    DeploymentState,
    FailureCause,
    OutcomeStatus,
)
from swapdeploy.runtime import DockerRuntime

log = get_logger("swapdeploy.deployer")

# Cause reported when an unexpected error escapes a pre-promotion state
_CAUSE_BY_STATE: dict[DeploymentState, FailureCause] = {
    DeploymentState.PULLING: FailureCause.IMAGE_PULL_FAILED,
    DeploymentState.STARTING_CANDIDATE: FailureCause.START_FAILED,
    DeploymentState.HEALTH_CHECKING: FailureCause.HEALTH_CHECK_EXHAUSTED,
    DeploymentState.ROLLING_BACK: FailureCause.HEALTH_CHECK_EXHAUSTED,
}


@dataclass
class _RunRecord:
    """Mutable bookkeeping for one run; frozen into an outcome at the end."""

    request: DeploymentRequest
    state: DeploymentState = DeploymentState.IDLE
    started: float = field(default_factory=time.monotonic)
    steps: list[str] = field(default_factory=list)
    probe_attempts: int = 0
    last_probe_reason: str | None = None


class Deployer:
    """Runs swap-and-verify deployments, one at a time per service name."""

    def __init__(
        self,
        runtime: DockerRuntime | None = None,
        prober: HealthProber | None = None,
    ) -> None:
        self._runtime = runtime or DockerRuntime()
        self._prober = prober or HealthProber()
        self._locks: dict[str, asyncio.Lock] = {}
        # Keyed by service name; runs for different services interleave.
        self._states: dict[str, DeploymentState] = {}
        self._operations: dict[str, str] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> Deployer:
        runtime = DockerRuntime(
            docker_binary=settings.docker_binary,
            pull_timeout=settings.pull_timeout,
            command_timeout=settings.command_timeout,
        )
        return cls(runtime=runtime, prober=HealthProber())

    # ------------------------------------------------------------------
    # Public status surface
    # ------------------------------------------------------------------

    def state(self, service_name: str) -> DeploymentState:
        """Current state of the run for *service_name*, or its last terminal state."""
        return self._states.get(service_name, DeploymentState.IDLE)

    def current_operation(self, service_name: str) -> str | None:
        return self._operations.get(service_name)

    def is_busy(self, service_name: str) -> bool:
        lock = self._locks.get(service_name)
        return lock is not None and lock.locked()

    # ------------------------------------------------------------------
    # Primary flow
    # ------------------------------------------------------------------

    async def run(self, request: DeploymentRequest) -> DeploymentOutcome:
        """Deploy ``request.image`` and return exactly one terminal outcome.

        Raises ``PromotionFailed`` if promotion breaks partway through.
        """
        lock = self._locks.setdefault(request.service_name, asyncio.Lock())
        if lock.locked():
            log.warning("deploy_rejected_in_progress", service=request.service_name)
            return DeploymentOutcome(
                status=OutcomeStatus.ROLLED_BACK,
                cause=FailureCause.DEPLOYMENT_IN_PROGRESS,
                message=f"Deployment of {request.service_name} already in progress",
                image=request.image,
                service_name=request.service_name,
            )

        async with lock:
            with deployment_context(request.service_name, request.image):
                try:
                    return await self._do_run(request)
                finally:
                    self._operations.pop(request.service_name, None)

    async def _do_run(self, request: DeploymentRequest) -> DeploymentOutcome:
        record = _RunRecord(request)
        log.info(
            "deploy_started",
            stable=request.stable_name,
            candidate=request.candidate_name,
            max_retries=request.max_retries,
            retry_interval=request.retry_interval,
            worst_case_check_seconds=request.worst_case_check_seconds,
        )

        try:
            self._enter(record, DeploymentState.PULLING, f"Pulling {request.image}")
            try:
                await self._runtime.pull(request.image)
            except RuntimeCommandError as exc:
                # Nothing has been touched yet: a no-op rollback.
                return self._rolled_back(
                    record,
                    FailureCause.IMAGE_PULL_FAILED,
                    f"Image pull failed, stable instance untouched: {exc}",
                )
            record.steps.append("pull")

            self._enter(
                record,
                DeploymentState.STARTING_CANDIDATE,
                f"Starting candidate {request.candidate_name}",
            )
            try:
                # Leftover from an interrupted run would collide on the name.
                await self._runtime.stop_and_remove(request.candidate_name)
                await self._runtime.start_detached(
                    request.candidate_name,
                    request.image,
                    labels=request.labels,
                )
            except RuntimeCommandError as exc:
                await self._discard_candidate(request)
                return self._rolled_back(
                    record,
                    FailureCause.START_FAILED,
                    f"Candidate failed to start: {exc}",
                )
            record.steps.append("start_candidate")

            if not await self._health_check(request, record):
                self._enter(
                    record,
                    DeploymentState.ROLLING_BACK,
                    f"Discarding candidate {request.candidate_name}",
                )
                await self._discard_candidate(request)
                record.steps.append("discard_candidate")
                return self._rolled_back(
                    record,
                    FailureCause.HEALTH_CHECK_EXHAUSTED,
                    (
                        f"Candidate unhealthy after {record.probe_attempts} of "
                        f"{request.max_retries} probes "
                        f"(last: {record.last_probe_reason or 'none'})"
                    ),
                )
            record.steps.append("health_check")

        except Exception as exc:
            log.exception("deploy_unexpected_error", state=record.state.value)
            cause = _CAUSE_BY_STATE.get(record.state, FailureCause.START_FAILED)
            if record.state is not DeploymentState.PULLING:
                await self._discard_candidate(request)
            return self._rolled_back(record, cause, f"Unexpected error: {exc}")

        await self._promote(request, record)
        await self._prune(request)

        self._settle(record, DeploymentState.PROMOTED)
        log.info("deploy_promoted", probe_attempts=record.probe_attempts)
        return self._finish(
            record,
            OutcomeStatus.PROMOTED,
            None,
            f"{request.image} promoted to {request.stable_name} "
            f"on port {request.host_port}",
        )

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    async def _health_check(self, request: DeploymentRequest, record: _RunRecord) -> bool:
        """Probe the candidate up to ``max_retries`` times; True on first success."""
        self._enter(
            record,
            DeploymentState.HEALTH_CHECKING,
            f"Waiting for {request.candidate_name} health",
        )
        try:
            candidate = await self._runtime.inspect(request.candidate_name)
        except RuntimeCommandError as exc:
            log.warning("deploy_candidate_inspect_failed", error=str(exc))
            record.last_probe_reason = "candidate_missing"
            return False

        if not candidate.running or not candidate.address:
            log.warning(
                "deploy_candidate_unreachable",
                status=candidate.status.value,
                address=candidate.address,
            )
            record.last_probe_reason = "candidate_not_running"
            return False

        for attempt in range(1, request.max_retries + 1):
            verdict = await self._prober.probe(
                candidate.address,
                request.app_port,
                request.health_path,
                request.probe_timeout,
            )
            record.probe_attempts = attempt
            record.last_probe_reason = verdict.reason
            if verdict.healthy:
                log.info("deploy_candidate_healthy", attempt=attempt)
                return True

            log.info(
                "deploy_probe_failed",
                attempt=attempt,
                max_retries=request.max_retries,
                reason=verdict.reason,
            )
            if attempt < request.max_retries:
                await asyncio.sleep(request.retry_interval)

        return False

    async def _promote(self, request: DeploymentRequest, record: _RunRecord) -> None:
        """Replace the stable container with a fresh one on the production port."""
        self._enter(record, DeploymentState.PROMOTING, f"Promoting {request.image}")
        step = "remove_stable"
        try:
            await self._runtime.stop_and_remove(request.stable_name)
            record.steps.append(step)

            step = "remove_candidate"
            await self._runtime.stop_and_remove(request.candidate_name)
            record.steps.append(step)

            step = "start_stable"
            await self._runtime.start_detached(
                request.stable_name,
                request.image,
                port_mapping=request.port_mapping,
                restart_policy=request.restart_policy,
                labels=request.labels,
            )
            record.steps.append(step)
        except Exception as exc:
            log.critical(
                "deploy_promotion_failed",
                step=step,
                stable=request.stable_name,
                error=str(exc),
            )
            raise PromotionFailed(
                f"Promotion failed at {step}: {exc}",
                step=step,
                image=request.image,
                stable_name=request.stable_name,
            ) from exc

    async def _prune(self, request: DeploymentRequest) -> None:
        try:
            await self._runtime.prune_images(request.prune_label)
        except PruneFailed as exc:
            log.warning("deploy_prune_failed", error=str(exc))

    async def _discard_candidate(self, request: DeploymentRequest) -> None:
        """Best-effort candidate removal; the stable container is never referenced."""
        try:
            await self._runtime.stop_and_remove(request.candidate_name)
        except RuntimeCommandError as exc:
            log.warning(
                "deploy_candidate_cleanup_failed",
                candidate=request.candidate_name,
                error=str(exc),
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _enter(self, record: _RunRecord, state: DeploymentState, operation: str) -> None:
        service_name = record.request.service_name
        record.state = state
        self._states[service_name] = state
        self._operations[service_name] = operation
        log.debug("deploy_state", state=state.value, operation=operation)

    def _settle(self, record: _RunRecord, state: DeploymentState) -> None:
        record.state = state
        self._states[record.request.service_name] = state

    def _rolled_back(
        self, record: _RunRecord, cause: FailureCause, message: str
    ) -> DeploymentOutcome:
        self._settle(record, DeploymentState.ROLLED_BACK)
        log.warning("deploy_rolled_back", cause=cause.value, reason=message)
        return self._finish(record, OutcomeStatus.ROLLED_BACK, cause, message)

    @staticmethod
    def _finish(
        record: _RunRecord,
        status: OutcomeStatus,
        cause: FailureCause | None,
        message: str,
    ) -> DeploymentOutcome:
        return DeploymentOutcome(
            status=status,
            cause=cause,
            message=message,
            image=record.request.image,
            service_name=record.request.service_name,
            probe_attempts=record.probe_attempts,
            last_probe_reason=record.last_probe_reason,
            steps_completed=tuple(record.steps),
            duration_seconds=round(time.monotonic() - record.started, 2),
        )

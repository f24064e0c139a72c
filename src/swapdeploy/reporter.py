"""Surfaces the terminal result of a run to the invoking pipeline.

The pipeline reads the exit code; humans read the summary line; tooling can
read the optional JSON result file.
"""

from __future__ import annotations

import json
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TextIO

from swapdeploy.constants import EXIT_FATAL, EXIT_PROMOTED, EXIT_ROLLED_BACK
from swapdeploy.errors import PromotionFailed
from swapdeploy.logging import get_logger
from swapdeploy.models import DeploymentOutcome

log = get_logger("swapdeploy.reporter")


def exit_code_for(outcome: DeploymentOutcome) -> int:
    """0 when the candidate was promoted, 1 when it was rolled back."""
    return EXIT_PROMOTED if outcome.succeeded else EXIT_ROLLED_BACK


class OutcomeReporter:
    """Writes outcomes to a stream and, optionally, a JSON result file."""

    def __init__(self, stream: TextIO | None = None, result_path: str | None = None) -> None:
        self._stream = stream or sys.stdout
        self._result_path = Path(result_path) if result_path else None

    def report(self, outcome: DeploymentOutcome) -> int:
        """Surface *outcome* and return the process exit code for it."""
        if outcome.succeeded:
            log.info(
                "deployment_promoted",
                service=outcome.service_name,
                image=outcome.image,
                duration_seconds=outcome.duration_seconds,
            )
            line = f"PROMOTED {outcome.service_name}: {outcome.message}"
        else:
            cause = outcome.cause.value if outcome.cause else "unknown"
            log.warning(
                "deployment_rolled_back",
                service=outcome.service_name,
                image=outcome.image,
                cause=cause,
                reason=outcome.message,
            )
            line = f"ROLLED_BACK {outcome.service_name} ({cause}): {outcome.message}"

        print(line, file=self._stream)
        self._write_result(outcome.to_dict())
        return exit_code_for(outcome)

    def report_fatal(self, error: PromotionFailed) -> int:
        """Surface a failed promotion. The service may be down."""
        log.critical(
            "deployment_fatal",
            stable=error.stable_name,
            image=error.image,
            step=error.step,
            error=str(error),
        )
        print(
            f"FATAL {error.stable_name}: promotion of {error.image} failed at "
            f"'{error.step}' after the stable instance was torn down. "
            "The service may be unavailable; manual intervention required. "
            f"Cause: {error}",
            file=self._stream,
        )
        self._write_result(
            {
                "status": "fatal",
                "cause": "PromotionFailed",
                "message": str(error),
                "image": error.image,
                "stable_name": error.stable_name,
                "step": error.step,
                "completed_at": datetime.now(UTC).isoformat(),
            }
        )
        return EXIT_FATAL

    def _write_result(self, payload: dict[str, Any]) -> None:
        if self._result_path is None:
            return
        try:
            self._result_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._result_path.with_suffix(".tmp")
            tmp_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
            tmp_path.replace(self._result_path)
        except OSError:
            log.exception("result_file_write_failed", path=str(self._result_path))

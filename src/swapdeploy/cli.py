"""Command-line entry point: one deployment run per invocation.

Exit status: 0 promoted, 1 rolled back, 2 fatal promotion failure or
invalid arguments.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from swapdeploy import __version__
from swapdeploy.config import Settings, get_settings
from swapdeploy.constants import CANDIDATE_SUFFIX
from swapdeploy.deployer import Deployer
from swapdeploy.errors import PromotionFailed
from swapdeploy.logging import get_logger, setup_logging
from swapdeploy.models import DeploymentRequest
from swapdeploy.reporter import OutcomeReporter


def _label(value: str) -> tuple[str, str]:
    key, sep, val = value.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"label must be KEY=VALUE, got {value!r}")
    return key, val


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="swapdeploy",
        description="Swap a container to a new image only after it passes its health check.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--image", required=True, help="Image reference, e.g. registry/svc:tag")
    parser.add_argument("--service", required=True, help="Stable service name")
    parser.add_argument("--stable-name", help="Stable container name (default: service name)")
    parser.add_argument(
        "--candidate-name",
        help=f"Candidate container name (default: <service>{CANDIDATE_SUFFIX})",
    )
    parser.add_argument("--host-port", type=int, required=True, help="Production host port")
    parser.add_argument("--app-port", type=int, required=True, help="Port inside the container")
    parser.add_argument(
        "--health-path",
        default=settings.health_path,
        help=f"Health endpoint path (default: {settings.health_path})",
    )
    parser.add_argument(
        "--max-retries",
        type=int,
        default=settings.max_retries,
        help=f"Health probes before rolling back (default: {settings.max_retries})",
    )
    parser.add_argument(
        "--retry-interval",
        type=float,
        default=settings.retry_interval,
        help=f"Seconds between probes (default: {settings.retry_interval})",
    )
    parser.add_argument(
        "--probe-timeout",
        type=float,
        default=settings.probe_timeout,
        help=f"Per-probe timeout in seconds (default: {settings.probe_timeout})",
    )
    parser.add_argument(
        "--restart-policy",
        default=settings.restart_policy,
        help="Restart policy for the promoted container",
    )
    parser.add_argument(
        "--label",
        dest="labels",
        type=_label,
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Label applied to candidate and promoted containers (repeatable)",
    )
    parser.add_argument(
        "--prune-label",
        default=settings.prune_label,
        help="Only prune dangling images carrying this label",
    )
    parser.add_argument("--result-file", help="Write the outcome as JSON to this path")
    return parser


def request_from_args(args: argparse.Namespace) -> DeploymentRequest:
    """Build a validated request. Raises ``ValueError`` on bad input."""
    return DeploymentRequest.from_dict(
        {
            "image": args.image,
            "service_name": args.service,
            "stable_name": args.stable_name,
            "candidate_name": args.candidate_name,
            "host_port": args.host_port,
            "app_port": args.app_port,
            "health_path": args.health_path,
            "max_retries": args.max_retries,
            "retry_interval": args.retry_interval,
            "probe_timeout": args.probe_timeout,
            "restart_policy": args.restart_policy or None,
            "labels": dict(args.labels),
            "prune_label": args.prune_label or None,
        }
    )


async def deploy(
    request: DeploymentRequest, deployer: Deployer, reporter: OutcomeReporter
) -> int:
    """Run one deployment and return its exit code."""
    try:
        outcome = await deployer.run(request)
    except PromotionFailed as exc:
        return reporter.report_fatal(exc)
    return reporter.report(outcome)


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    parser = build_parser(settings)
    args = parser.parse_args(argv)

    try:
        request = request_from_args(args)
    except ValueError as exc:
        parser.error(str(exc))

    setup_logging()
    log = get_logger("swapdeploy.cli")
    log.info("swapdeploy_starting", version=__version__, environment=settings.environment)

    deployer = Deployer.from_settings(settings)
    reporter = OutcomeReporter(result_path=args.result_file)
    return asyncio.run(deploy(request, deployer, reporter))


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()

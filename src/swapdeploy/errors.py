"""Exceptions raised by the runtime client and the deployer.

Everything except ``PromotionFailed`` is recoverable: the deployer converts
it into a rolled-back outcome before it leaves ``Deployer.run()``.
"""

from __future__ import annotations


class SwapDeployError(Exception):
    """Base class for swapdeploy errors."""


class RuntimeCommandError(SwapDeployError):
    """A container runtime command exited non-zero or timed out."""

    def __init__(
        self,
        message: str,
        *,
        cmd: str = "",
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr


class ImagePullFailed(RuntimeCommandError):
    """The image could not be pulled (network, missing tag, auth)."""


class StartFailed(RuntimeCommandError):
    """A container could not be created or started."""


class ContainerNotFound(RuntimeCommandError):
    """``inspect`` found no container with the given name."""


class PruneFailed(RuntimeCommandError):
    """Image prune failed. Advisory only."""


class PromotionFailed(SwapDeployError):
    """Promotion broke after the stable container was touched.

    The stable container may already be gone, so the service may be down.
    This is never retried automatically.
    """

    def __init__(self, message: str, *, step: str, image: str, stable_name: str) -> None:
        super().__init__(message)
        self.step = step
        self.image = image
        self.stable_name = stable_name

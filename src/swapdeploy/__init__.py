"""swapdeploy: zero-downtime container swaps for a single host.

Pulls a new image, starts it as a candidate beside the running service,
verifies its health endpoint, and only then replaces the stable container.
A candidate that fails verification is discarded and the stable container
keeps serving.
"""

__version__ = "0.1.0"

"""Kopf entry point for the Azure resource operator."""

import logging
import os
import sys
from pathlib import Path
from typing import Any

# Add src directory to path for imports when run as script by Kopf
_src_dir = Path(__file__).parent
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

import kopf
from prometheus_client import start_http_server

from constants import FINALIZER
from metrics import init_metrics, set_operator_info
from resources.catalog import KINDS
from state import state

# Import resource handlers (registers with Kopf)
import handlers  # noqa: F401

logger = logging.getLogger(__name__)

# Operator version
OPERATOR_VERSION = "0.1.0"


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
    """Configure operator settings on startup."""
    # Reduce logging noise
    settings.posting.level = logging.WARNING
    # Configure persistence
    settings.persistence.finalizer = FINALIZER
    # Set watching namespace - explicit cluster-wide or specific namespace
    # Can be overridden by WATCH_NAMESPACE env var
    watch_namespace = os.environ.get("WATCH_NAMESPACE", "")
    if watch_namespace:
        settings.watching.namespaces = [watch_namespace]
    else:
        settings.watching.clusterwide = True

    # Start Prometheus metrics server
    metrics_port = int(os.environ.get("METRICS_PORT", "9090"))
    try:
        start_http_server(metrics_port)
        logger.info("Prometheus metrics server started on port %d", metrics_port)
    except OSError as e:
        logger.warning("Failed to start metrics server on port %d: %s", metrics_port, e)

    # Initialize metrics and set operator info
    subscription_id = os.environ.get("AZURE_SUBSCRIPTION_ID", "")
    init_metrics([kind.kind for kind in KINDS])
    set_operator_info(OPERATOR_VERSION, subscription_id)

    if not subscription_id:
        logger.warning("AZURE_SUBSCRIPTION_ID is not set, every Azure call will fail")

    logger.info("Azure operator started (version %s)", OPERATOR_VERSION)


@kopf.on.cleanup()
def cleanup(**_: Any) -> None:
    """Clean up resources on operator shutdown."""
    logger.info("Azure operator shutting down")
    state.close()


def main() -> None:
    """Entry point for running the operator."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Kopf will be run via the CLI, but this allows direct invocation for testing
    logger.info("Starting Azure operator...")
    logger.info("Use 'kopf run src/main.py' to run the operator")
    sys.exit(0)


if __name__ == "__main__":
    main()

"""
Prometheus metrics server for ProcureSaathi.

This script starts an HTTP server that exposes Prometheus metrics at /metrics.
It can be run standalone or alongside the API (see ``procure serve --metrics-port``).

Usage:
    python -m procure_saathi.metrics_server --port 9090
"""

import argparse
import time

from procure_saathi.kernel.logging import configure_logging, get_logger, is_production
from procure_saathi.kernel.metrics import start_metrics_server

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="ProcureSaathi Metrics Server")
    parser.add_argument(
        "--port",
        type=int,
        default=9090,
        help="Port to listen on (default: 9090)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=is_production(),
        help="Output logs in JSON format (default: on when ENVIRONMENT=production)",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """
    Start the Prometheus metrics server.

    The server exposes all marketplace metrics at http://0.0.0.0:<port>/metrics
    in Prometheus text format.
    """
    args = build_parser().parse_args(argv)

    configure_logging(json_output=args.json_logs, log_level=args.log_level)

    logger.info(
        "Starting Prometheus metrics server",
        port=args.port,
        endpoint=f"http://0.0.0.0:{args.port}/metrics",
    )

    start_metrics_server(port=args.port)

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Shutting down metrics server")


if __name__ == "__main__":
    main()

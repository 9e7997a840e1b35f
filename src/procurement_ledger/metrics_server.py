"""
Prometheus metrics exporter for the procurement ledger

Exposes every procurement_* metric at /metrics. Metrics are per process,
so run this inside the process that hosts the engine, or pass --db to
rebuild the utilization gauges from an existing database.

Usage:
    python -m procurement_ledger.metrics_server --port 9090 --db ledger.db
"""

import argparse
import time

from procurement_ledger.kernel.logging import configure_logging, get_logger
from procurement_ledger.kernel.metrics import start_metrics_server, update_budget_utilization

logger = get_logger(__name__)


def main(argv: list[str] | None = None) -> None:
    """Start the Prometheus metrics server and block until interrupted"""
    parser = argparse.ArgumentParser(description="Procurement Ledger Metrics Server")
    parser.add_argument(
        "--port",
        type=int,
        default=9090,
        help="Port to listen on (default: 9090)",
    )
    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="Event store to load, so budget utilization gauges start populated",
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
        help="Output logs in JSON format (default: False)",
    )

    args = parser.parse_args(argv)

    configure_logging(json_output=args.json_logs, log_level=args.log_level)

    if args.db:
        from procurement_ledger.engine import ProcurementEngine

        engine = ProcurementEngine(args.db)
        for item in engine.budget_item_registry.list_live():
            update_budget_utilization(item.code, item.budget_amount, item.committed)
        logger.info("Loaded ledger for gauges", db_path=args.db)

    logger.info(
        "Starting Prometheus metrics server",
        port=args.port,
        endpoint=f"http://0.0.0.0:{args.port}/metrics",
    )
    start_metrics_server(port=args.port)
    logger.info("Metrics server started successfully")

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Shutting down metrics server")


if __name__ == "__main__":
    main()

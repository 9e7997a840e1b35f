"""
Health check HTTP server for liveness and readiness checks

/health/live   process is up
/health/ready  event store reachable
/health        event store stats plus the ledger consistency check, when an
               engine has been registered
"""

import sqlite3
from pathlib import Path
from typing import Any

from flask import Flask, jsonify

from procurement_ledger import __version__
from procurement_ledger.kernel.logging import get_logger

logger = get_logger(__name__)

app = Flask(__name__)

SERVICE_NAME = "procurement-ledger"

# Set by initialize_health_server()
_db_path: Path | None = None
_engine: Any = None  # ProcurementEngine for the ledger check


def initialize_health_server(db_path: str | Path, engine: Any = None) -> None:
    """
    Point the health server at a database (and optionally a live engine)

    Args:
        db_path: Path to the SQLite event store
        engine: Optional ProcurementEngine for the ledger consistency check
    """
    global _db_path, _engine
    _db_path = Path(db_path)
    _engine = engine
    logger.info("Health server initialized", db_path=str(_db_path))


def _not_ready(reason: str, **extra: Any) -> tuple[Any, int]:
    return jsonify({"status": "not_ready", "reason": reason, **extra}), 503


@app.route("/health/live", methods=["GET"])
def liveness() -> tuple[Any, int]:
    """Liveness check - the process is running"""
    return jsonify({"status": "alive", "service": SERVICE_NAME}), 200


@app.route("/health/ready", methods=["GET"])
def readiness() -> tuple[Any, int]:
    """
    Readiness check - the event store can be queried

    Returns:
        200 with the event count, or 503 with a reason
    """
    if _db_path is None:
        logger.error("Readiness check failed: DB path not initialized")
        return _not_ready("database_path_not_initialized")

    if not _db_path.exists():
        logger.error("Readiness check failed: DB file does not exist", db_path=str(_db_path))
        return _not_ready("database_file_not_found", db_path=str(_db_path))

    try:
        conn = sqlite3.connect(str(_db_path), timeout=1.0)
        try:
            event_count = conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.error("Readiness check failed: DB error", error=str(e))
        return _not_ready("database_operational_error", error=str(e))

    logger.debug("Readiness check passed", event_count=event_count)
    return jsonify({"status": "ready", "database": "accessible", "event_count": event_count}), 200


@app.route("/health", methods=["GET"])
def detailed_health() -> tuple[Any, int]:
    """
    Detailed health - event store stats and ledger consistency

    A ledger whose balances disagree with its purchase orders is reported
    as degraded (503).
    """
    health_data: dict[str, Any] = {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": __version__,
    }

    if _db_path and _db_path.exists():
        try:
            conn = sqlite3.connect(str(_db_path), timeout=1.0)
            try:
                event_count = conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]
                stream_count = conn.execute(
                    "SELECT COUNT(DISTINCT stream_id) FROM events"
                ).fetchone()[0]
                page_count = conn.execute("PRAGMA page_count").fetchone()[0]
                page_size = conn.execute("PRAGMA page_size").fetchone()[0]
            finally:
                conn.close()

            health_data["database"] = {
                "status": "healthy",
                "path": str(_db_path),
                "event_count": event_count,
                "stream_count": stream_count,
                "size_mb": round(page_count * page_size / (1024 * 1024), 2),
            }
        except sqlite3.Error as e:
            logger.error("Database health check failed", error=str(e))
            health_data["database"] = {"status": "unhealthy", "error": str(e)}
            health_data["status"] = "degraded"
    else:
        health_data["database"] = {"status": "not_initialized"}
        health_data["status"] = "degraded"

    if _engine is not None:
        ledger = _engine.health()
        health_data["ledger"] = ledger
        if not ledger["ledger_consistent"]:
            health_data["status"] = "degraded"

    status_code = 200 if health_data["status"] == "healthy" else 503
    return jsonify(health_data), status_code


def run_health_server(port: int = 8080, debug: bool = False) -> None:
    """
    Run the health check server

    Args:
        port: Port to listen on (default: 8080)
        debug: Enable Flask debug mode (default: False)
    """
    logger.info("Starting health check server", port=port)
    app.run(host="0.0.0.0", port=port, debug=debug)


if __name__ == "__main__":
    # For local poking: python -m procurement_ledger.health_server
    initialize_health_server("/tmp/procurement-test.db")
    run_health_server(port=8080, debug=True)

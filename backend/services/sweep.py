"""
Sweeps planifiés (point d'entrée cron).

Usage:
  python -m backend.services.sweep                 # les deux sweeps
  python -m backend.services.sweep --only low-stock
  python -m backend.services.sweep --only shortages --log-level DEBUG

Les réquisitions créées sont attribuées à l'acteur SYSTEM (SYSTEM_USER_ID).
Code de sortie 0 si tout s'est exécuté, 1 sur erreur d'infrastructure.
"""
from __future__ import annotations

import argparse
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from backend.app.core.logging import setup_logging
from backend.app.db.session import SessionLocal
from backend.services.actor import Actor
from backend.services.requisitions import check_and_alert_low_stock, check_sales_order_shortages

logger = logging.getLogger(__name__)

SWEEPS = ("low-stock", "shortages")


def run(db, only: str | None = None) -> dict:
    actor = Actor.system()
    summary = {}
    if only in (None, "low-stock"):
        result = check_and_alert_low_stock(db, actor)
        summary["low-stock"] = {"checked": result.checked, "created": len(result.created)}
    if only in (None, "shortages"):
        result = check_sales_order_shortages(db, actor)
        summary["shortages"] = {"checked": result.checked, "created": len(result.created)}
    return summary


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run low-stock and sales-order shortage sweeps.")
    parser.add_argument("--only", choices=SWEEPS, default=None, help="Run a single sweep")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    args = parser.parse_args(argv)

    setup_logging(args.log_level, json_output=True if args.json_logs else None)

    db = SessionLocal()
    try:
        summary = run(db, args.only)
    except SQLAlchemyError:
        logger.exception("sweep_failed")
        return 1
    finally:
        db.close()

    for name, counts in summary.items():
        print(f"{name}: checked={counts['checked']} created={counts['created']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""CLI tool for admin operations.

Usage:
    python -m backend.cli seed-configs
    python -m backend.cli run-job <quote_update|uva_update|custody_fee|sell_monitor>
    python -m backend.cli import-uva <YYYY-MM-DD> <YYYY-MM-DD>
"""

import asyncio
import sys
from datetime import date

from sqlmodel import Session

from backend.database import create_db_and_tables, engine, seed_commission_configs
from backend.exceptions import PortfolioError
from backend.services import uva
from backend.services.repository import SqlRepository
from backend.utils.logging import setup_logging

COMMANDS = ("seed-configs", "run-job", "import-uva")


def seed_configs():
    """Insert the built-in broker configs when the table is empty."""
    create_db_and_tables()
    created = seed_commission_configs(engine)
    print(f"Seeded {created} commission configs." if created else "Commission configs already present.")


def run_job(name: str):
    from backend.engine.jobs import JOBS

    job = JOBS.get(name)
    if job is None:
        print(f"Unknown job '{name}'. Jobs: {', '.join(JOBS)}")
        sys.exit(1)

    create_db_and_tables()
    result = asyncio.run(job() if name == "custody_fee" else job(force=True))
    print(f"{name}: {result['status']} {result.get('message', '')}".rstrip())
    if result["status"] == "error":
        sys.exit(1)


def import_uva(start: str, end: str):
    """Fetch UVA values for a date range and store them."""
    try:
        from_date, to_date = date.fromisoformat(start), date.fromisoformat(end)
    except ValueError:
        print("Dates must be YYYY-MM-DD.")
        sys.exit(1)
    if to_date < from_date:
        print("End date must not be before start date.")
        sys.exit(1)

    create_db_and_tables()
    try:
        values = asyncio.run(uva.fetch_uva_values(from_date, to_date))
        with Session(engine) as session:
            stats = uva.store_uva_values(SqlRepository(session), values)
    except PortfolioError as e:
        print(f"UVA import failed: {e.message}")
        sys.exit(1)
    print(f"Imported {len(values)} UVA values ({stats['created']} new, {stats['updated']} updated).")


def main():
    if len(sys.argv) < 2:
        print("Usage: python -m backend.cli <command> [args]")
        print(f"Commands: {', '.join(COMMANDS)}")
        sys.exit(1)

    setup_logging()
    command, args = sys.argv[1], sys.argv[2:]
    if command == "seed-configs":
        seed_configs()
    elif command == "run-job" and len(args) == 1:
        run_job(args[0])
    elif command == "import-uva" and len(args) == 2:
        import_uva(*args)
    else:
        print(f"Unknown command or wrong arguments: {' '.join(sys.argv[1:])}")
        sys.exit(1)


if __name__ == "__main__":
    main()

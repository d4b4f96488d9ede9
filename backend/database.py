"""SQLModel database engine and session management."""

import logging
from pathlib import Path

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine, Session, select

from backend.config import settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str) -> Engine:
    """Create an engine for the given URL, preparing SQLite file paths."""
    # SQLite needs check_same_thread=False; PostgreSQL does not
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        if database_url.startswith("sqlite:///"):
            db_path = database_url[len("sqlite:///"):]
            if db_path and db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    return create_engine(
        database_url,
        echo=False,
        connect_args=connect_args,
    )


engine = build_engine(settings.database_url)


def _run_migrations(target: Engine):
    """Run lightweight schema fixes that create_all does not handle."""
    from sqlalchemy import text

    inspector = inspect(target)
    tables = inspector.get_table_names()

    # Older databases were created without the per-day quote constraint
    if "quote" in tables:
        existing_indexes = inspector.get_indexes("quote")
        existing_uniques = inspector.get_unique_constraints("quote")
        has_unique = any(
            idx["name"] == "ix_quote_instrument_date_unique" for idx in existing_indexes
        ) or any(uc["name"] == "uq_quote_instrument_date" for uc in existing_uniques)
        if not has_unique:
            logger.info("Migrating: adding unique index on quote(instrument_id, quote_date)")
            with target.connect() as conn:
                conn.execute(text(
                    "CREATE UNIQUE INDEX ix_quote_instrument_date_unique "
                    "ON quote (instrument_id, quote_date)"
                ))
                conn.commit()

    # Keep at most one active commission config
    if "commission_config" in tables:
        with target.connect() as conn:
            active = conn.execute(text(
                "SELECT id FROM commission_config WHERE is_active = :flag ORDER BY updated_at DESC"
            ), {"flag": True}).fetchall()
            if len(active) > 1:
                keep = active[0][0]
                logger.warning(
                    f"Found {len(active)} active commission configs; keeping id={keep}"
                )
                conn.execute(text(
                    "UPDATE commission_config SET is_active = :off WHERE id != :keep"
                ), {"off": False, "keep": keep})
                conn.commit()


def seed_commission_configs(target: Engine) -> int:
    """Insert the built-in broker schedules when no config exists yet."""
    from backend.models.commission_config import CommissionConfig
    from backend.utils.constants import DEFAULT_BROKER_CONFIGS

    with Session(target) as session:
        if session.exec(select(CommissionConfig)).first() is not None:
            return 0
        for name, values in DEFAULT_BROKER_CONFIGS.items():
            session.add(CommissionConfig(**values, is_active=(name == settings.default_broker)))
        session.commit()
    logger.info(f"Seeded {len(DEFAULT_BROKER_CONFIGS)} default commission configs")
    return len(DEFAULT_BROKER_CONFIGS)


def create_db_and_tables(target: Engine | None = None):
    """Create all tables. Called on startup."""
    import backend.models  # noqa: F401  registers tables on the metadata

    target = target or engine
    SQLModel.metadata.create_all(target)
    _run_migrations(target)
    if settings.seed_default_configs:
        seed_commission_configs(target)


def get_session() -> Session:
    """Dependency that yields a database session.

    Rows stay loaded after commit so handlers can return them.
    """
    with Session(engine, expire_on_commit=False) as session:
        yield session

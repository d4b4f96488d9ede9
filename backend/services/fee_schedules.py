"""Selection of the broker fee schedule a calculation runs with."""

import logging
from dataclasses import replace

from backend.config import settings
from backend.exceptions import NotFoundError
from backend.models import CommissionConfig
from backend.services.commission_engine import FeeSchedule, default_schedule
from backend.services.repository import PortfolioRepository
from backend.utils.constants import DEFAULT_BROKER_CONFIGS

logger = logging.getLogger(__name__)


def resolve_schedule(repo: PortfolioRepository, broker: str | None = None) -> FeeSchedule:
    """Stored config for `broker`, else the active one, else the built-in default.

    An explicit broker that is neither stored nor built in raises NotFoundError.
    """
    if broker:
        record = repo.get_commission_config(broker)
        if record is not None:
            return FeeSchedule.from_record(record)
        return default_schedule(broker)

    record = repo.active_commission_config()
    if record is not None:
        return FeeSchedule.from_record(record)
    logger.debug(f"No active commission config, using built-in '{settings.default_broker}'")
    return default_schedule(settings.default_broker)


def all_schedules(repo: PortfolioRepository) -> list[FeeSchedule]:
    """Stored configs, all treated as comparable regardless of the active flag."""
    records = repo.list_commission_configs()
    if not records:
        return [FeeSchedule.from_dict(v) for v in DEFAULT_BROKER_CONFIGS.values()]
    # "is_active" on a stored row means "default selection", not availability
    return [replace(FeeSchedule.from_record(r), is_active=True) for r in records]


def activate(repo: PortfolioRepository, name: str) -> CommissionConfig:
    """Make `name` the single active config."""
    with repo.transaction():
        record = repo.activate_commission_config(name.lower())
        if record is None:
            raise NotFoundError(f"Commission config '{name}' not found", details={"name": name})
    logger.info(f"Active commission config is now '{record.name}'")
    return record

"""Scheduled jobs.

These are the functions APScheduler calls. Each job runs at most once at a
time (a per-job lock; overlapping triggers are logged as skipped), keeps
run statistics and writes one JobLog row per run.
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable

from sqlalchemy.engine import Engine
from sqlmodel import Session

from backend import database
from backend.config import settings
from backend.models.job_log import JobLog
from backend.services import custody, fee_schedules, quotes, sell_analysis, uva
from backend.services.repository import SqlRepository

logger = logging.getLogger(__name__)


@dataclass
class JobStats:
    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    skipped_runs: int = 0
    last_run: str | None = None
    last_success: str | None = None
    last_error: str | None = None
    last_result: dict[str, Any] | None = None


JOB_NAMES = ("quote_update", "uva_update", "custody_fee", "sell_monitor")

_stats: dict[str, JobStats] = {name: JobStats() for name in JOB_NAMES}
_locks: dict[str, asyncio.Lock] = {}


class JobSkipped(Exception):
    """Raised inside a job body to end the run as skipped."""


def _notify(message: str):
    """Send a Telegram notification (fire-and-forget)."""
    try:
        from backend.services.telegram_bot import get_bot
        bot = get_bot()
        if bot and bot._loop:
            asyncio.run_coroutine_threadsafe(bot.send_notification(message), bot._loop)
    except Exception as e:
        logger.debug(f"Notification not sent: {e}")


def get_job_stats() -> dict[str, dict]:
    return {name: asdict(stats) for name, stats in _stats.items()}


def reset_job_stats():
    for name in JOB_NAMES:
        _stats[name] = JobStats()


def _get_lock(name: str) -> asyncio.Lock:
    lock = _locks.get(name)
    if lock is None:
        lock = asyncio.Lock()
        _locks[name] = lock
    return lock


def _log_run(target: Engine, name: str, status: str, message: str | None = None,
             duration_ms: int | None = None, details: dict | None = None):
    """Write a JobLog entry."""
    try:
        with Session(target) as session:
            session.add(JobLog(
                job_name=name,
                status=status,
                message=message,
                duration_ms=duration_ms,
                details=details,
            ))
            session.commit()
    except Exception as e:
        logger.error(f"Failed to write job log for {name}: {e}")


async def _run_job(
    name: str,
    body: Callable[[Engine], Awaitable[dict[str, Any]]],
    target: Engine | None = None,
) -> dict[str, Any]:
    target = target or database.engine
    stats = _stats.setdefault(name, JobStats())
    lock = _get_lock(name)

    if lock.locked():
        logger.warning(f"[{name}] Skipping overlapping run")
        stats.skipped_runs += 1
        _log_run(target, name, "skipped", "Previous run still in progress")
        return {"status": "skipped", "message": "Previous run still in progress"}

    async with lock:
        started = time.monotonic()
        stats.total_runs += 1
        stats.last_run = datetime.now(timezone.utc).isoformat()
        try:
            result = await body(target)
        except JobSkipped as e:
            stats.skipped_runs += 1
            _log_run(target, name, "skipped", str(e))
            logger.info(f"[{name}] Skipped: {e}")
            return {"status": "skipped", "message": str(e)}
        except Exception as e:
            duration = int((time.monotonic() - started) * 1000)
            stats.failed_runs += 1
            stats.last_error = str(e)
            logger.error(f"[{name}] Job error: {e}", exc_info=True)
            _notify(f"[{name}] ERROR: {e}")
            _log_run(target, name, "error", str(e), duration)
            return {"status": "error", "message": str(e)}

        duration = int((time.monotonic() - started) * 1000)
        stats.successful_runs += 1
        stats.last_success = datetime.now(timezone.utc).isoformat()
        stats.last_result = result
        _log_run(target, name, "success", result.get("message"), duration, result)
        logger.info(f"[{name}] Completed in {duration}ms")
        return {"status": "success", **result}


# ---------------------------------------------------------------------------
# Quote update
# ---------------------------------------------------------------------------

async def _quote_update(target: Engine, force: bool = False) -> dict[str, Any]:
    if settings.quote_market_hours_only and not force and not quotes.is_market_open():
        raise JobSkipped("Outside market hours")

    attempts = max(1, settings.quote_retry_attempts)
    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            with Session(target) as session:
                results = await quotes.refresh_quotes(SqlRepository(session))
            break
        except Exception as e:
            last_error = e
            logger.warning(f"[quote_update] Attempt {attempt}/{attempts} failed: {e}")
            if attempt < attempts:
                await asyncio.sleep(settings.quote_retry_delay_seconds)
    else:
        raise last_error

    failed = [f"{r.symbol}: {r.error}" for r in results if not r.success]
    if failed:
        logger.warning(f"[quote_update] {len(failed)} quotes failed: {failed}")
    updated = len(results) - len(failed)
    return {
        "message": f"Updated {updated}/{len(results)} quotes",
        "updated": updated,
        "failed": failed,
    }


async def run_quote_update(force: bool = False, target: Engine | None = None) -> dict[str, Any]:
    """Refresh quotes for all active instruments."""
    return await _run_job("quote_update", lambda e: _quote_update(e, force), target)


# ---------------------------------------------------------------------------
# UVA update
# ---------------------------------------------------------------------------

async def _uva_update(target: Engine, force: bool = False) -> dict[str, Any]:
    today = datetime.now(timezone.utc).date()
    if not force and today.weekday() >= 5:
        raise JobSkipped("UVA is only published on business days")

    latest = await uva.fetch_latest_uva()
    with Session(target) as session:
        stats = uva.store_uva_values(SqlRepository(session), [latest])
    return {
        "message": f"UVA {latest.value_date.isoformat()} = {latest.value}",
        "date": latest.value_date.isoformat(),
        "value": latest.value,
        **stats,
    }


async def run_uva_update(force: bool = False, target: Engine | None = None) -> dict[str, Any]:
    """Fetch and store the latest UVA value."""
    return await _run_job("uva_update", lambda e: _uva_update(e, force), target)


# ---------------------------------------------------------------------------
# Monthly custody fee
# ---------------------------------------------------------------------------

async def _custody_fee(target: Engine, month: date | None, dry_run: bool) -> dict[str, Any]:
    month = month or custody.previous_month(datetime.now(timezone.utc).date())
    with Session(target) as session:
        repo = SqlRepository(session)
        config = fee_schedules.resolve_schedule(repo)
        run = custody.charge_monthly_custody(repo, config, month, dry_run=dry_run)

    result: dict[str, Any] = {
        "message": f"Custody {month:%Y-%m} ({run.broker}): {run.status}",
        "month": month.isoformat(),
        "broker": run.broker,
        "charge_status": run.status,
        "portfolio_value": run.portfolio_value,
    }
    if run.fee is not None:
        result["total_charged"] = run.fee.total_monthly_cost
        result["is_exempt"] = run.fee.is_exempt
    if run.status == "charged":
        _notify(f"Custody fee {month:%Y-%m}: ${run.fee.total_monthly_cost:,.2f} ({run.broker})")
    return result


async def run_custody_fee(
    month: date | None = None,
    dry_run: bool | None = None,
    target: Engine | None = None,
) -> dict[str, Any]:
    """Record the custody fee for `month` (default: the previous month)."""
    dry_run = settings.custody_dry_run if dry_run is None else dry_run
    return await _run_job("custody_fee", lambda e: _custody_fee(e, month, dry_run), target)


# ---------------------------------------------------------------------------
# Sell monitor
# ---------------------------------------------------------------------------

async def _sell_monitor(target: Engine, force: bool = False) -> dict[str, Any]:
    if not force and not quotes.is_market_open():
        raise JobSkipped("Outside market hours")

    with Session(target) as session:
        repo = SqlRepository(session)
        config = fee_schedules.resolve_schedule(repo)
        results, errors = sell_analysis.analyze_all(repo, config)

    urgent = [
        r for r in results
        if r.recommendation != "HOLD" or r.risk_level == "CRITICAL"
    ]
    for r in urgent:
        _notify(
            f"{r.symbol}: {r.recommendation} ({r.risk_level}) "
            f"net {r.net_profit_pct:+.1f}%, score {r.sell_score}\n{r.recommendation_reason}"
        )
    return {
        "message": f"Analyzed {len(results)} positions, {len(urgent)} need attention",
        "analyzed": len(results),
        "urgent": [r.symbol for r in urgent],
        "errors": errors,
    }


async def run_sell_monitor(force: bool = False, target: Engine | None = None) -> dict[str, Any]:
    """Score every open position and notify actionable recommendations."""
    return await _run_job("sell_monitor", lambda e: _sell_monitor(e, force), target)


JOBS: dict[str, Callable[..., Awaitable[dict[str, Any]]]] = {
    "quote_update": run_quote_update,
    "uva_update": run_uva_update,
    "custody_fee": run_custody_fee,
    "sell_monitor": run_sell_monitor,
}

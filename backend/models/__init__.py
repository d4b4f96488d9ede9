"""Database models."""

from backend.models.instrument import Instrument
from backend.models.trade import Trade
from backend.models.position import PortfolioPosition
from backend.models.quote import Quote
from backend.models.commission_config import CommissionConfig
from backend.models.custody_fee import CustodyFee
from backend.models.break_even import BreakEvenAnalysis
from backend.models.sell_analysis import SellAnalysis, SellAlert
from backend.models.uva import UVA
from backend.models.job_log import JobLog

__all__ = [
    "Instrument",
    "Trade",
    "PortfolioPosition",
    "Quote",
    "CommissionConfig",
    "CustodyFee",
    "BreakEvenAnalysis",
    "SellAnalysis",
    "SellAlert",
    "UVA",
    "JobLog",
]

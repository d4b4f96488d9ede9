"""Shared constants and defaults for fee schedules and scoring."""

TRADE_TYPES = ("BUY", "SELL")

# Built-in broker fee schedules (ARS). Rates are fractions, not percentages.
DEFAULT_BROKER_CONFIGS: dict[str, dict] = {
    "galicia": {
        "name": "galicia",
        "broker": "Banco Galicia",
        "buy_percentage": 0.005,
        "buy_minimum": 150.0,
        "buy_iva": 0.21,
        "sell_percentage": 0.005,
        "sell_minimum": 150.0,
        "sell_iva": 0.21,
        "custody_exempt_amount": 1_000_000.0,
        "custody_monthly_percentage": 0.0025,
        "custody_monthly_minimum": 500.0,
        "custody_iva": 0.21,
    },
    "santander": {
        "name": "santander",
        "broker": "Banco Santander",
        "buy_percentage": 0.006,
        "buy_minimum": 200.0,
        "buy_iva": 0.21,
        "sell_percentage": 0.006,
        "sell_minimum": 200.0,
        "sell_iva": 0.21,
        "custody_exempt_amount": 500_000.0,
        "custody_monthly_percentage": 0.003,
        "custody_monthly_minimum": 600.0,
        "custody_iva": 0.21,
    },
    "macro": {
        "name": "macro",
        "broker": "Banco Macro",
        "buy_percentage": 0.0055,
        "buy_minimum": 180.0,
        "buy_iva": 0.21,
        "sell_percentage": 0.0055,
        "sell_minimum": 180.0,
        "sell_iva": 0.21,
        "custody_exempt_amount": 800_000.0,
        "custody_monthly_percentage": 0.0028,
        "custody_monthly_minimum": 450.0,
        "custody_iva": 0.21,
    },
}

# Minimum-investment recommendation bands (ARS)
LOW_INVESTMENT_BAND = 10_000.0
HIGH_INVESTMENT_BAND = 100_000.0

# Sell score weights; must sum to 1.0
SELL_SCORE_WEIGHTS: dict[str, float] = {
    "technical": 0.3,
    "fundamental": 0.2,
    "profit": 0.3,
    "time": 0.1,
    "market": 0.1,
}

# Net profit % thresholds driving sell recommendations
DEFAULT_SELL_THRESHOLDS: dict[str, float] = {
    "take_profit_1": 15.0,
    "take_profit_2": 20.0,
    "stop_loss": -8.0,
    "trailing_stop_trigger": 10.0,
    "trailing_stop_distance": 5.0,
    "time_based_days": 90,
}

RECOMMENDATIONS = ("HOLD", "TAKE_PROFIT_1", "TAKE_PROFIT_2", "STOP_LOSS", "TRAILING_STOP")
RISK_LEVELS = ("LOW", "MEDIUM", "HIGH", "CRITICAL")

# Break-even scenarios: multiplier applied to the base annual inflation rate
BREAK_EVEN_SCENARIOS: dict[str, float] = {
    "OPTIMISTIC": 0.7,
    "BASE": 1.0,
    "PESSIMISTIC": 1.3,
}
PROJECTION_STEP_MONTHS = 3
PROJECTION_HORIZON_MONTHS = 12

# Capital gains estimate for positions held longer than a year
LONG_TERM_DAYS = 365
TAX_GAIN_ASSUMPTION = 0.05
TAX_RATE = 0.15

APP_NAME = "Cash Forecast"
APP_WIDTH = 1200
APP_HEIGHT = 750
DB_FILE = "cashforecast.db"

DATE_FORMAT = "%Y-%m-%d"
MONTH_FORMAT = "%Y-%m"
DEFAULT_CURRENCY = "USD"

TRANSACTION_TYPES = ["income", "expense", "transfer"]

FREQUENCIES = ["weekly", "biweekly", "monthly", "bimonthly", "quarterly", "yearly", "custom"]
CUSTOM_UNITS = ["day", "week", "month", "year"]

# Fixed day offsets; everything else is calendar-month arithmetic
DAY_INTERVALS = {
    "weekly": 7,
    "biweekly": 14,
}
MONTH_INTERVALS = {
    "monthly": 1,
    "bimonthly": 2,
    "quarterly": 3,
    "yearly": 12,
}

AMOUNT_TYPES = ["fixed", "average", "last_year"]
AMOUNT_TYPE_LABELS = {
    "fixed": "Fixed",
    "average": "Average of history",
    "last_year": "Same month last year",
}

# Runaway guard: postings per rule per processor invocation
MAX_OCCURRENCES_PER_RUN = 24

FORECAST_PERIODS = {
    "2m": 60,
    "3m": 90,
    "6m": 180,
    "1y": 365,
}
DEFAULT_FORECAST_PERIOD = "6m"
DEFAULT_PAST_DAYS = 30
INSTALLMENT_ROADMAP_MONTHS = 24
FORECAST_CACHE_SIZE = 32

ALERT_HORIZON_DAYS = 60
CRITICAL_ALERT_DAYS = 7
CRITICAL_ALERT_DEFICIT = 1000.0

SEVERITY_COLORS = {
    "critical": "#F44336",
    "warning":  "#FF9800",
    "info":     "#2196F3",
}

SCENARIO_COLORS = ["#10b981", "#f59e0b", "#ec4899", "#8b5cf6", "#f97316"]

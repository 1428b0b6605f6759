import os
import sys
import customtkinter as ctk
import structlog

# Ensure project root is on sys.path when run directly
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from database.db_manager import DatabaseManager
from database.account_dao import AccountDAO
from database.transaction_dao import TransactionDAO
from database.recurring_dao import RecurringDAO

from services.account_service import AccountService
from services.alert_service import AlertService
from services.recurring_service import RecurringService
from services.forecast_service import ForecastService
from services.data_service import DataService
from services.session import SessionState
from services.transaction_service import TransactionService

from ui.app_window import AppWindow
from utils.app_config import get_db_folder, get_log_level
from utils.date_helpers import today
from utils.errors import ConfigurationError, RecurringCommitError, ValidationError
from utils.log import configure_logging

logger = structlog.get_logger(__name__)


def main():
    # ── Bootstrap: read DB folder and log level from pre-DB config ────────────
    configure_logging(get_log_level())
    db_folder = get_db_folder()

    # ── Database ─────────────────────────────────────────────────────────────
    db = DatabaseManager.open_in_folder(db_folder=db_folder)
    logger.info("database_opened", path=db.db_path)

    # ── DAOs ─────────────────────────────────────────────────────────────────
    account_dao = AccountDAO(db)
    tx_dao = TransactionDAO(db)
    recurring_dao = RecurringDAO(db)

    # ── Services ─────────────────────────────────────────────────────────────
    account_svc = AccountService(account_dao)
    recurring_svc = RecurringService(db, recurring_dao, tx_dao)
    forecast_svc = ForecastService(account_dao, tx_dao, recurring_dao)
    alert_svc = AlertService(account_dao, tx_dao, recurring_dao)
    tx_svc = TransactionService(tx_dao, account_dao)
    data_svc = DataService(db, account_dao, recurring_dao, tx_dao)
    session = SessionState()

    # ── Apply due recurring rules ────────────────────────────────────────────
    try:
        new_transactions = recurring_svc.apply_on_startup(session, today())
    except RecurringCommitError as exc:
        new_transactions = exc.committed
    except (ValidationError, ConfigurationError) as exc:
        # A stored rule the processor cannot walk; open the app so it can be fixed
        logger.error("recurring_startup_failed", error=str(exc))
        new_transactions = []

    # ── Appearance ───────────────────────────────────────────────────────────
    appearance = db.get_setting("appearance_mode", "system")
    ctk.set_appearance_mode(appearance)
    ctk.set_default_color_theme("blue")

    # ── Launch UI ────────────────────────────────────────────────────────────
    app = AppWindow(
        account_service=account_svc,
        recurring_service=recurring_svc,
        forecast_service=forecast_svc,
        alert_service=alert_svc,
        transaction_service=tx_svc,
        session=session,
        db=db,
        data_service=data_svc,
        startup_transactions=new_transactions,
    )

    def on_close():
        db.close()
        app.destroy()

    app.protocol("WM_DELETE_WINDOW", on_close)
    app.mainloop()


if __name__ == "__main__":
    main()

import json
from tkinter import filedialog, messagebox

import customtkinter as ctk
import structlog

from models.account import ACCOUNT_TYPE_LABELS
from models.transaction import Transaction
from services.account_service import AccountService
from services.alert_service import AlertService
from services.recurring_service import RecurringService
from services.forecast_service import ForecastService
from services.data_service import DataService
from services.session import SessionState
from services.transaction_service import TransactionService
from database.db_manager import DatabaseManager
from ui.components.alert_banner import AlertBanner, balance_alert_banner
from ui.components.confirm_dialog import ConfirmDialog
from ui.tabs.recurring_tab import RecurringTab
from ui.tabs.forecast_tab import ForecastTab
from ui.tabs.transactions_tab import TransactionsTab
from utils.constants import APP_NAME, APP_WIDTH, APP_HEIGHT
from utils.date_helpers import today
from utils.errors import ValidationError

logger = structlog.get_logger(__name__)

_REFRESH_SCOPES: dict[str, set[str]] = {
    "recurring": {"alerts", "recurring", "forecast", "transactions"},
    "account":   {"alerts", "forecast", "transactions"},
    "full":      {"alerts", "recurring", "forecast", "transactions"},
}


class AppWindow(ctk.CTk):
    def __init__(
        self,
        account_service: AccountService,
        recurring_service: RecurringService,
        forecast_service: ForecastService,
        alert_service: AlertService,
        transaction_service: TransactionService,
        session: SessionState,
        db: DatabaseManager | None = None,
        data_service: DataService | None = None,
        startup_transactions: list[Transaction] | None = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self._acct_svc = account_service
        self._recurring_svc = recurring_service
        self._forecast_svc = forecast_service
        self._alert_svc = alert_service
        self._tx_svc = transaction_service
        self._session = session
        self._db = db
        self._data_svc = data_service
        self._startup_transactions = startup_transactions or []

        self.title(APP_NAME)
        self.minsize(APP_WIDTH, APP_HEIGHT)
        self.geometry(f"{APP_WIDTH}x{APP_HEIGHT}")

        self._accounts = self._acct_svc.get_liquid()

        self.grid_columnconfigure(0, weight=1)
        self.grid_rowconfigure(2, weight=1)

        self._build_top_bar()
        self._build_banner_area()
        self._build_tabs()

        self.after(200, self._show_alerts)

        # Show startup banner for new recurring transactions
        if self._startup_transactions:
            count = len(self._startup_transactions)
            self.after(300, lambda: self._show_recurring_banner(count))

    # ── Top bar ──────────────────────────────────────────────────────────────
    def _build_top_bar(self):
        bar = ctk.CTkFrame(self, fg_color=("gray85", "gray15"), corner_radius=0, height=44)
        bar.grid(row=0, column=0, sticky="ew")
        bar.grid_propagate(False)

        ctk.CTkLabel(bar, text="Liquid accounts:", anchor="e").pack(side="left", padx=(12, 4), pady=8)
        self._accounts_label = ctk.CTkLabel(bar, text="", text_color="gray60")
        self._accounts_label.pack(side="left", padx=4)
        self._update_accounts_label()

        if self._data_svc:
            ctk.CTkButton(
                bar, text="Import...", width=90,
                fg_color="transparent", border_width=1,
                text_color=("gray10", "gray90"),
                command=self._import_data,
            ).pack(side="right", padx=(4, 12))
            ctk.CTkButton(
                bar, text="Export...", width=90,
                command=self._export_data,
            ).pack(side="right", padx=4)

    def _build_banner_area(self):
        self._banner_frame = ctk.CTkFrame(self, fg_color="transparent", height=0)
        self._banner_frame.grid(row=1, column=0, sticky="ew", padx=8)

    def _build_tabs(self):
        self._tabview = ctk.CTkTabview(self)
        self._tabview.grid(row=2, column=0, sticky="nsew", padx=8, pady=(0, 8))

        for tab_name in ("Forecast", "Recurring", "Transactions"):
            self._tabview.add(tab_name)
            self._tabview.tab(tab_name).grid_columnconfigure(0, weight=1)
            self._tabview.tab(tab_name).grid_rowconfigure(0, weight=1)

        self._forecast_tab = ForecastTab(
            self._tabview.tab("Forecast"),
            forecast_service=self._forecast_svc,
            account_service=self._acct_svc,
        )
        self._forecast_tab.grid(row=0, column=0, sticky="nsew")

        self._recurring_tab = RecurringTab(
            self._tabview.tab("Recurring"),
            recurring_service=self._recurring_svc,
            account_service=self._acct_svc,
            session=self._session,
            notify_refresh=self.notify_tabs_refresh,
        )
        self._recurring_tab.grid(row=0, column=0, sticky="nsew")

        self._transactions_tab = TransactionsTab(
            self._tabview.tab("Transactions"),
            tx_service=self._tx_svc,
            account_service=self._acct_svc,
        )
        self._transactions_tab.grid(row=0, column=0, sticky="nsew")

    def _update_accounts_label(self):
        parts = [
            f"{a.name} [{ACCOUNT_TYPE_LABELS.get(a.account_type, a.account_type)}]"
            for a in self._accounts
        ]
        self._accounts_label.configure(text=", ".join(parts) or "none")

    # ── Refresh ──────────────────────────────────────────────────────────────
    def notify_tabs_refresh(self, scope: str = "full"):
        tabs = _REFRESH_SCOPES.get(scope, _REFRESH_SCOPES["full"])
        if scope in ("account", "full"):
            self._accounts = self._acct_svc.get_liquid()
            self._update_accounts_label()
        if "recurring" in tabs: self._recurring_tab.refresh()
        if "forecast"  in tabs: self._forecast_tab.refresh()
        if "transactions" in tabs: self._transactions_tab.refresh()
        if "alerts"    in tabs: self._show_alerts()

    # ── Banners ──────────────────────────────────────────────────────────────
    def _show_alerts(self):
        for w in self._banner_frame.winfo_children():
            if getattr(w, "is_balance_alert", False):
                w.destroy()
        for alert in self._alert_svc.get_alerts(self._session, today()):
            banner = balance_alert_banner(
                self._banner_frame, alert,
                on_dismiss=lambda a=alert: self._alert_svc.dismiss(self._session, a),
                action_cmd=lambda: self._tabview.set("Forecast"),
            )
            banner.is_balance_alert = True
            banner.pack(fill="x", pady=2)

    def _show_recurring_banner(self, count: int):
        banner = AlertBanner(
            self._banner_frame,
            message=f"{count} recurring transaction{'s' if count != 1 else ''} were automatically added.",
            color="#2196F3",
            action_text="View",
            action_cmd=lambda: self._tabview.set("Recurring"),
        )
        banner.pack(fill="x", pady=2)

    # ── Backup / restore ─────────────────────────────────────────────────────
    def _export_data(self):
        path = filedialog.asksaveasfilename(
            parent=self, title="Export Data",
            defaultextension=".json", filetypes=[("JSON", "*.json")],
        )
        if not path:
            return
        try:
            self._data_svc.export_to_file(path)
        except OSError as exc:
            messagebox.showerror("Export", f"Could not write file:\n{exc}", parent=self)
            return
        logger.info("data_exported", path=path)

    def _import_data(self):
        path = filedialog.askopenfilename(
            parent=self, title="Import Data", filetypes=[("JSON", "*.json")],
        )
        if not path:
            return
        dlg = ConfirmDialog(
            self, "Import Data",
            "Replace all current accounts, rules and transactions with the file contents,\n"
            "or merge the file into them?",
            confirm_text="Replace", cancel_text="Merge",
        )
        mode = "replace" if dlg.result else "merge"
        try:
            stats = self._data_svc.import_from_file(path, mode)
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            messagebox.showerror("Import", f"Import failed:\n{exc}", parent=self)
            return
        messagebox.showinfo(
            "Import",
            f"Imported {stats['accounts']} account(s), {stats['recurring']} rule(s) "
            f"and {stats['transactions']} transaction(s).",
            parent=self,
        )
        self.notify_tabs_refresh("full")

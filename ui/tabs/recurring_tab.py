import customtkinter as ctk
from tkinter import messagebox

from models.account import Account
from models.recurring_rule import RecurringRule
from services.recurring_service import RecurringService
from services.account_service import AccountService
from services.session import SessionState
from ui.components.confirm_dialog import ConfirmDialog
from utils.constants import AMOUNT_TYPE_LABELS
from utils.currency import currency_symbol, format_currency
from utils.date_helpers import today, format_display_date
from utils.errors import ProcessorBusyError, RecurringCommitError, ValidationError


def _frequency_text(rule: RecurringRule) -> str:
    if rule.frequency == "custom":
        unit = rule.custom_unit or "month"
        return f"Every {rule.custom_interval or 1} {unit}(s)"
    return rule.frequency.title()


def _progress_text(rule: RecurringRule) -> str:
    if rule.is_capped:
        return f"{rule.occurrences_processed}/{rule.total_occurrences}"
    return str(rule.occurrences_processed)


class RecurringTab(ctk.CTkFrame):
    def __init__(
        self,
        master,
        recurring_service: RecurringService,
        account_service: AccountService,
        session: SessionState,
        notify_refresh,
        **kwargs,
    ):
        super().__init__(master, fg_color="transparent", **kwargs)
        self._svc = recurring_service
        self._acct_svc = account_service
        self._session = session
        self._notify_refresh = notify_refresh

        self.grid_columnconfigure(0, weight=1)
        self.grid_rowconfigure(1, weight=1)

        self._build_toolbar()
        self._build_list()
        self._load()

    def refresh(self):
        self._load()

    def _build_toolbar(self):
        bar = ctk.CTkFrame(self, fg_color=("gray88", "gray18"), corner_radius=8)
        bar.grid(row=0, column=0, sticky="ew", padx=8, pady=(8, 0))
        ctk.CTkLabel(
            bar, text="Recurring Rules",
            font=ctk.CTkFont(size=14, weight="bold"),
        ).pack(side="left", padx=12, pady=8)
        self._status_label = ctk.CTkLabel(bar, text="", text_color="gray60")
        self._status_label.pack(side="left", padx=8)
        ctk.CTkButton(bar, text="Run due now", command=self._run_due).pack(
            side="right", padx=8, pady=6
        )

    def _build_list(self):
        self._scroll = ctk.CTkScrollableFrame(self)
        self._scroll.grid(row=1, column=0, sticky="nsew", padx=8, pady=8)
        self._scroll.grid_columnconfigure(0, weight=1)

    def _load(self):
        for w in self._scroll.winfo_children():
            w.destroy()

        rules = self._svc.get_all()
        if not rules:
            ctk.CTkLabel(
                self._scroll,
                text="No recurring rules yet.",
                text_color="gray60",
            ).grid(row=0, column=0, pady=40)
            return

        # Header
        hdr = ctk.CTkFrame(self._scroll, fg_color=("gray82", "gray22"), corner_radius=0)
        hdr.grid(row=0, column=0, sticky="ew", pady=(0, 2))
        for i, (col, w) in enumerate([
            ("Payee", 150), ("Type", 70), ("Amount", 110),
            ("Account", 110), ("Frequency", 110), ("Next Due", 80),
            ("Posted", 60), ("Status", 70), ("Actions", 150),
        ]):
            ctk.CTkLabel(
                hdr, text=col, width=w, anchor="w",
                font=ctk.CTkFont(weight="bold"),
            ).grid(row=0, column=i, padx=4, pady=4)

        accounts = {a.id: a for a in self._acct_svc.get_all()}
        for idx, rule in enumerate(rules):
            self._add_row(idx + 1, rule, accounts)

    def _add_row(self, idx, rule: RecurringRule, accounts: dict[int, Account]):
        bg = ("gray92", "gray17") if idx % 2 == 0 else ("gray88", "gray21")
        row = ctk.CTkFrame(self._scroll, fg_color=bg, corner_radius=4)
        row.grid(row=idx, column=0, sticky="ew", pady=1, padx=2)

        account = accounts.get(rule.account_id)
        amount_text = format_currency(rule.amount, currency_symbol(account.currency if account else None))
        if rule.amount_type != "fixed":
            amount_text += f" ({AMOUNT_TYPE_LABELS.get(rule.amount_type, rule.amount_type)})"
        account_text = account.name if account else "?"
        if rule.type == "transfer" and rule.to_account_id in accounts:
            account_text += f" → {accounts[rule.to_account_id].name}"
        status_text = "Active" if rule.is_active else "Inactive"
        status_color = "#4CAF50" if rule.is_active else "gray60"

        data = [
            (rule.payee, 150),
            (rule.type.title(), 70),
            (amount_text, 110),
            (account_text, 110),
            (_frequency_text(rule), 110),
            (format_display_date(rule.next_due_date) if rule.is_active else "-", 80),
            (_progress_text(rule), 60),
        ]
        for i, (text, width) in enumerate(data):
            ctk.CTkLabel(row, text=text, width=width, anchor="w").grid(
                row=0, column=i, padx=4, pady=4
            )

        ctk.CTkLabel(
            row, text=status_text, width=70, anchor="w",
            text_color=status_color,
        ).grid(row=0, column=7, padx=4)

        acts = ctk.CTkFrame(row, fg_color="transparent")
        acts.grid(row=0, column=8, padx=(4, 6))
        ctk.CTkButton(
            acts, text="Post now", width=64, height=24,
            state="normal" if not rule.cap_reached else "disabled",
            command=lambda r=rule: self._post_now(r),
        ).pack(side="left", padx=2)
        toggle_text = "Pause" if rule.is_active else "Resume"
        ctk.CTkButton(
            acts, text=toggle_text, width=52, height=24,
            fg_color="transparent", border_width=1,
            text_color=("gray10", "gray90"),
            command=lambda r=rule: self._toggle_active(r),
        ).pack(side="left", padx=2)
        ctk.CTkButton(
            acts, text="✕", width=24, height=24,
            fg_color="transparent", text_color="#F44336",
            command=lambda r=rule: self._delete(r),
        ).pack(side="left")

    # ── Actions ──────────────────────────────────────────────────────────────

    def _run_due(self):
        try:
            posted = self._svc.apply_due_rules(self._session, today())
        except ProcessorBusyError:
            self._status_label.configure(text="Already running...")
            return
        except RecurringCommitError as exc:
            messagebox.showwarning(
                "Recurring Rules",
                f"{len(exc.committed)} transaction(s) posted, "
                f"{len(exc.failures)} rule(s) could not be saved.",
                parent=self,
            )
            self._notify_refresh("recurring")
            return
        count = len(posted)
        self._status_label.configure(
            text=f"{count} transaction{'s' if count != 1 else ''} posted"
        )
        self._notify_refresh("recurring")

    def _post_now(self, rule: RecurringRule):
        try:
            tx = self._svc.post_now(self._session, rule.id)
        except ProcessorBusyError:
            self._status_label.configure(text="Already running...")
            return
        except ValidationError as exc:
            messagebox.showerror("Recurring Rules", str(exc), parent=self)
            return
        self._status_label.configure(
            text=f"Posted {rule.payee} {format_currency(tx.amount)} for {format_display_date(tx.date)}"
        )
        self._notify_refresh("recurring")

    def _toggle_active(self, rule: RecurringRule):
        self._svc.set_active(rule.id, not rule.is_active)
        self._notify_refresh("recurring")

    def _delete(self, rule: RecurringRule):
        dlg = ConfirmDialog(
            self.winfo_toplevel(), "Delete Rule",
            f"Delete the recurring rule for '{rule.payee}'?\n"
            "Transactions it already posted are kept.",
            confirm_text="Delete",
        )
        if dlg.result:
            self._svc.delete(rule.id)
            self._notify_refresh("recurring")

import customtkinter as ctk

from models.account import Account
from models.transaction import Transaction
from services.account_service import AccountService
from services.transaction_service import TransactionService
from utils.currency import currency_symbol, format_currency


_MAX_RENDERED_ROWS = 100
_TYPE_COLORS = {"income": "#4CAF50", "expense": "#F44336", "transfer": "#2196F3"}


class TransactionsTab(ctk.CTkFrame):
    """Posted ledger for one account. Entries are read-only apart from
    the reconciled flag and the category."""

    def __init__(
        self,
        master,
        tx_service: TransactionService,
        account_service: AccountService,
        **kwargs,
    ):
        super().__init__(master, fg_color="transparent", **kwargs)
        self._tx_svc = tx_service
        self._acct_svc = account_service

        self._accounts = account_service.get_all()
        self._acct_var = ctk.StringVar(value=self._accounts[0].name if self._accounts else "")
        self._type_var = ctk.StringVar(value="all")
        self._reconciled_var = ctk.StringVar(value="all")

        self.grid_columnconfigure(0, weight=1)
        self.grid_rowconfigure(2, weight=1)

        self._build_filter_bar()
        self._build_header()
        self._build_register()
        self._load()

    def refresh(self):
        self._accounts = self._acct_svc.get_all()
        names = [a.name for a in self._accounts]
        self._acct_combo.configure(values=names)
        if self._acct_var.get() not in names:
            self._acct_var.set(names[0] if names else "")
        self._load()

    def _selected_account(self) -> Account | None:
        return next((a for a in self._accounts if a.name == self._acct_var.get()), None)

    # ── Filter bar ──────────────────────────────────────────────────────────
    def _build_filter_bar(self):
        bar = ctk.CTkFrame(self, fg_color=("gray88", "gray18"), corner_radius=8)
        bar.grid(row=0, column=0, sticky="ew", padx=8, pady=(8, 0))

        ctk.CTkLabel(bar, text="Account:").pack(side="left", padx=(12, 4), pady=8)
        self._acct_combo = ctk.CTkComboBox(
            bar, values=[a.name for a in self._accounts],
            variable=self._acct_var, width=160, state="readonly",
            command=lambda _: self._load(),
        )
        self._acct_combo.pack(side="left", padx=(0, 16))

        ctk.CTkSegmentedButton(
            bar,
            values=["all", "income", "expense", "transfer"],
            variable=self._type_var,
            command=lambda _: self._load(),
        ).pack(side="left", padx=8)

        ctk.CTkSegmentedButton(
            bar,
            values=["all", "reconciled", "pending"],
            variable=self._reconciled_var,
            command=lambda _: self._load(),
        ).pack(side="left", padx=8)

    # ── Column headers ───────────────────────────────────────────────────────
    def _build_header(self):
        hdr = ctk.CTkFrame(self, fg_color=("gray82", "gray22"), corner_radius=0)
        hdr.grid(row=1, column=0, sticky="ew", padx=8, pady=(4, 0))
        cols = [("✓", 30), ("Date", 90), ("Type", 72), ("Payee", 170),
                ("Category", 140), ("Amount", 100), ("Balance", 100)]
        for i, (label, width) in enumerate(cols):
            ctk.CTkLabel(
                hdr, text=label, width=width, anchor="w",
                font=ctk.CTkFont(weight="bold"),
            ).grid(row=0, column=i, padx=4, pady=4, sticky="w")

    def _build_register(self):
        self._scroll = ctk.CTkScrollableFrame(self)
        self._scroll.grid(row=2, column=0, sticky="nsew", padx=8, pady=(0, 8))
        self._scroll.grid_columnconfigure(0, weight=1)

    def _load(self):
        for w in self._scroll.winfo_children():
            w.destroy()

        account = self._selected_account()
        if account is None:
            ctk.CTkLabel(self._scroll, text="No account selected.").grid(row=0, column=0)
            return

        rows = self._tx_svc.get_with_running_balance(
            account.id, self._type_var.get(), self._reconciled_var.get()
        )
        if not rows:
            ctk.CTkLabel(
                self._scroll, text="No transactions.", text_color="gray60",
            ).grid(row=0, column=0, pady=20)
            return

        # Newest first
        visible = list(reversed(rows))[:_MAX_RENDERED_ROWS]
        symbol = currency_symbol(account.currency)
        for idx, (tx, balance) in enumerate(visible):
            self._add_row(idx, tx, balance, account, symbol)

        if len(rows) > _MAX_RENDERED_ROWS:
            ctk.CTkLabel(
                self._scroll,
                text=f"Showing the latest {_MAX_RENDERED_ROWS} of {len(rows)} transactions.",
                text_color="gray60",
                font=ctk.CTkFont(size=11),
            ).grid(row=_MAX_RENDERED_ROWS, column=0, pady=8)

    def _add_row(self, idx: int, tx: Transaction, balance: float, account: Account, symbol: str):
        bg = ("gray92", "gray17") if idx % 2 == 0 else ("gray88", "gray21")
        row = ctk.CTkFrame(self._scroll, fg_color=bg, corner_radius=4)
        row.grid(row=idx, column=0, sticky="ew", pady=1, padx=2)

        reconciled_var = ctk.BooleanVar(value=tx.is_reconciled)
        ctk.CTkCheckBox(
            row, text="", variable=reconciled_var, width=30,
            command=lambda t=tx, v=reconciled_var: self._tx_svc.set_reconciled(t.id, v.get()),
        ).grid(row=0, column=0, padx=(6, 0), pady=4)

        ctk.CTkLabel(row, text=tx.date, width=90, anchor="w").grid(row=0, column=1, padx=4)
        ctk.CTkLabel(
            row, text=tx.type.title(), width=72, anchor="w",
            text_color=_TYPE_COLORS.get(tx.type, "gray"),
        ).grid(row=0, column=2, padx=4)

        payee = tx.payee or "-"
        if tx.recurring_rule_id is not None:
            payee += " ↻"
        ctk.CTkLabel(row, text=payee, width=170, anchor="w").grid(row=0, column=3, padx=4)

        category_var = ctk.StringVar(value=tx.category)
        entry = ctk.CTkEntry(row, textvariable=category_var, width=140)
        entry.grid(row=0, column=4, padx=4)
        save = lambda _=None, t=tx, v=category_var: self._save_category(t, v)
        entry.bind("<Return>", save)
        entry.bind("<FocusOut>", save)

        outgoing = tx.type == "expense" or (tx.type == "transfer" and tx.account_id == account.id)
        amt_text = ("-" if outgoing else "+") + format_currency(tx.amount, symbol)
        ctk.CTkLabel(
            row, text=amt_text, width=100, anchor="e",
            text_color="#F44336" if outgoing else "#4CAF50",
        ).grid(row=0, column=5, padx=4)

        ctk.CTkLabel(
            row, text=format_currency(balance, symbol), width=100, anchor="e",
            text_color="#4CAF50" if balance >= 0 else "#F44336",
        ).grid(row=0, column=6, padx=4)

    def _save_category(self, tx: Transaction, var: ctk.StringVar):
        category = var.get().strip()
        if category != tx.category:
            self._tx_svc.update_category(tx.id, category)
            tx.category = category

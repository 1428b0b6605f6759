import customtkinter as ctk

from models.recurring_rule import RecurringRule
from models.scenario import Scenario, TentativeTransaction
from services.forecast_service import make_scenario
from utils.currency import format_currency
from utils.date_helpers import format_date, today


class ScenarioForm(ctk.CTkToplevel):
    """Add or edit a what-if scenario: expense cut, one-time income,
    per-rule amount overrides and tentative one-off postings."""

    def __init__(
        self,
        master,
        rules: list[RecurringRule],
        scenario_id: str,
        color: str,
        scenario: Scenario | None = None,
        **kwargs,
    ):
        super().__init__(master, **kwargs)
        self._rules = rules
        self._scenario_id = scenario_id
        self._color = color
        self.result: Scenario | None = None

        self.title("Edit Scenario" if scenario else "New Scenario")
        self.resizable(False, False)
        self.grid_columnconfigure(1, weight=1)

        r = 0
        self._add_label("Name:", r)
        self._name_var = ctk.StringVar(value=scenario.name if scenario else "What-if")
        ctk.CTkEntry(self, textvariable=self._name_var, width=240).grid(
            row=r, column=1, padx=(0, 16), pady=4, sticky="ew"
        )
        r += 1

        self._add_label("Cut expenses (%):", r)
        self._reduction_var = ctk.StringVar(
            value=f"{scenario.expense_reduction:g}" if scenario else "0"
        )
        ctk.CTkEntry(self, textvariable=self._reduction_var, width=240).grid(
            row=r, column=1, padx=(0, 16), pady=4, sticky="ew"
        )
        r += 1

        self._add_label("One-time income:", r)
        self._income_var = ctk.StringVar(
            value=f"{scenario.one_time_income:.2f}" if scenario else "0"
        )
        ctk.CTkEntry(self, textvariable=self._income_var, width=240).grid(
            row=r, column=1, padx=(0, 16), pady=4, sticky="ew"
        )
        r += 1

        # Rule overrides: blank keeps the rule's own amount
        ctk.CTkLabel(
            self, text="Recurring overrides", font=ctk.CTkFont(weight="bold"),
        ).grid(row=r, column=0, columnspan=2, padx=16, pady=(10, 2), sticky="w")
        r += 1
        overrides_frame = ctk.CTkScrollableFrame(self, height=120)
        overrides_frame.grid(row=r, column=0, columnspan=2, padx=16, pady=2, sticky="ew")
        overrides_frame.grid_columnconfigure(0, weight=1)
        current = scenario.recurring_overrides if scenario else {}
        self._override_vars: dict[int, ctk.StringVar] = {}
        for i, rule in enumerate(self._rules):
            ctk.CTkLabel(
                overrides_frame,
                text=f"{rule.payee} ({rule.type}, {format_currency(rule.amount)})",
                anchor="w",
            ).grid(row=i, column=0, padx=4, pady=2, sticky="w")
            var = ctk.StringVar(value=f"{current[rule.id]:.2f}" if rule.id in current else "")
            ctk.CTkEntry(
                overrides_frame, textvariable=var, width=90, placeholder_text="unchanged",
            ).grid(row=i, column=1, padx=4, pady=2)
            self._override_vars[rule.id] = var
        if not self._rules:
            ctk.CTkLabel(
                overrides_frame, text="No active recurring rules.", text_color="gray60",
            ).grid(row=0, column=0, pady=8)
        r += 1

        # Tentative postings
        head = ctk.CTkFrame(self, fg_color="transparent")
        head.grid(row=r, column=0, columnspan=2, padx=16, pady=(10, 2), sticky="ew")
        ctk.CTkLabel(
            head, text="Tentative postings", font=ctk.CTkFont(weight="bold"),
        ).pack(side="left")
        ctk.CTkButton(
            head, text="+ Add", width=60, height=24, command=self._add_tentative_row,
        ).pack(side="right")
        r += 1
        self._tentative_frame = ctk.CTkFrame(self, fg_color="transparent")
        self._tentative_frame.grid(row=r, column=0, columnspan=2, padx=16, pady=2, sticky="ew")
        self._tentative_rows: list[dict] = []
        for t in (scenario.tentative_transactions if scenario else []):
            self._add_tentative_row(t)
        r += 1

        self._error_var = ctk.StringVar()
        ctk.CTkLabel(self, textvariable=self._error_var, text_color="#F44336").grid(
            row=r, column=0, columnspan=2, padx=16, pady=(6, 0)
        )
        r += 1

        btns = ctk.CTkFrame(self, fg_color="transparent")
        btns.grid(row=r, column=0, columnspan=2, pady=(6, 14))
        ctk.CTkButton(
            btns, text="Cancel", width=90,
            fg_color="transparent", border_width=1,
            text_color=("gray10", "gray90"),
            command=self.destroy,
        ).pack(side="left", padx=6)
        ctk.CTkButton(btns, text="Save", width=90, command=self._on_save).pack(side="left", padx=6)

        self._center()
        self.grab_set()
        self.wait_window()

    def _add_label(self, text, row):
        ctk.CTkLabel(self, text=text).grid(
            row=row, column=0, padx=(16, 8), pady=4, sticky="e"
        )

    def _add_tentative_row(self, tentative: TentativeTransaction | None = None):
        row = ctk.CTkFrame(self._tentative_frame, fg_color="transparent")
        row.pack(fill="x", pady=1)
        fields = {
            "date": ctk.StringVar(value=tentative.date if tentative else format_date(today())),
            "amount": ctk.StringVar(value=f"{tentative.amount:.2f}" if tentative else ""),
            "payee": ctk.StringVar(value=tentative.payee if tentative else ""),
            "type": ctk.StringVar(value=tentative.type if tentative else "expense"),
        }
        ctk.CTkEntry(row, textvariable=fields["date"], width=95).pack(side="left", padx=2)
        ctk.CTkEntry(
            row, textvariable=fields["amount"], width=75, placeholder_text="Amount",
        ).pack(side="left", padx=2)
        ctk.CTkEntry(
            row, textvariable=fields["payee"], width=110, placeholder_text="Payee",
        ).pack(side="left", padx=2)
        ctk.CTkSegmentedButton(
            row, values=["expense", "income"], variable=fields["type"],
        ).pack(side="left", padx=2)
        entry = {"frame": row, **fields}
        ctk.CTkButton(
            row, text="✕", width=24, height=24,
            fg_color="transparent", text_color="#F44336",
            command=lambda: self._remove_tentative_row(entry),
        ).pack(side="left", padx=2)
        self._tentative_rows.append(entry)

    def _remove_tentative_row(self, entry: dict):
        entry["frame"].destroy()
        self._tentative_rows.remove(entry)

    def _on_save(self):
        try:
            reduction = float(self._reduction_var.get() or 0)
            income = float(self._income_var.get() or 0)
        except ValueError:
            self._error_var.set("Expense cut and income must be numbers.")
            return

        overrides: dict[int, float] = {}
        for rule_id, var in self._override_vars.items():
            text = var.get().strip()
            if not text:
                continue
            try:
                overrides[rule_id] = float(text)
            except ValueError:
                self._error_var.set(f"Invalid override amount: {text}")
                return

        tentative: list[TentativeTransaction] = []
        for entry in self._tentative_rows:
            try:
                amount = float(entry["amount"].get())
            except ValueError:
                self._error_var.set("Every tentative posting needs an amount.")
                return
            tentative.append(TentativeTransaction(
                date=entry["date"].get().strip(),
                amount=amount,
                payee=entry["payee"].get().strip(),
                type=entry["type"].get(),
            ))

        try:
            self.result = make_scenario(
                self._scenario_id, self._name_var.get(), self._color,
                expense_reduction=reduction,
                one_time_income=income,
                recurring_overrides=overrides,
                tentative_transactions=tentative,
            )
        except ValueError as e:
            self._error_var.set(str(e))
            return
        self.destroy()

    def _center(self):
        self.update_idletasks()
        mw = self.master.winfo_x() + self.master.winfo_width() // 2
        mh = self.master.winfo_y() + self.master.winfo_height() // 2
        w, h = self.winfo_reqwidth(), self.winfo_reqheight()
        self.geometry(f"+{mw - w//2}+{mh - h//2}")

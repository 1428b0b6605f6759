import dataclasses
import threading
import customtkinter as ctk
import tkinter as tk
from matplotlib.figure import Figure
from matplotlib.backends.backend_tkagg import FigureCanvasTkAgg

import structlog

from models.forecast import ForecastPoint, MonthSummary
from models.scenario import Scenario
from services.forecast_service import ForecastService, summarize_by_month
from services.account_service import AccountService
from ui.components.scenario_form import ScenarioForm
from utils.constants import DEFAULT_FORECAST_PERIOD, DEFAULT_PAST_DAYS, FORECAST_PERIODS, SCENARIO_COLORS
from utils.currency import currency_symbol, format_currency
from utils.date_helpers import friendly_month, today
from utils.errors import ValidationError

logger = structlog.get_logger(__name__)

_ALL_LIQUID = "All Liquid"
_NET_COLOR = "#2196F3"
_CHECKING_COLOR = "#9E9E9E"


class ForecastTab(ctk.CTkFrame):
    def __init__(
        self,
        master,
        forecast_service: ForecastService,
        account_service: AccountService,
        **kwargs,
    ):
        super().__init__(master, fg_color="transparent", **kwargs)
        self._forecast_svc = forecast_service
        self._acct_svc = account_service

        self._accounts = account_service.get_all()
        self._acct_var = ctk.StringVar(value=_ALL_LIQUID)
        self._period_var = ctk.StringVar(value=DEFAULT_FORECAST_PERIOD)
        self._past_var = ctk.BooleanVar(value=False)
        self._scenarios: list[Scenario] = []
        self._scenario_seq = 0
        self._load_gen = 0

        self.grid_columnconfigure(0, weight=1)
        self.grid_rowconfigure(2, weight=0)
        self.grid_rowconfigure(3, weight=1)

        self._build_toolbar()
        self._build_scenario_bar()
        self._build_chart_area()
        self._build_table()
        self.after(100, self._load)

    def refresh(self):
        self._accounts = self._acct_svc.get_all()
        self._acct_combo.configure(values=[_ALL_LIQUID] + [a.name for a in self._accounts])
        self._load()

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _get_account_id(self):
        name = self._acct_var.get()
        if name == _ALL_LIQUID:
            return None
        acct = next((a for a in self._accounts if a.name == name), None)
        return acct.id if acct else None

    def _symbol(self) -> str:
        name = self._acct_var.get()
        acct = next((a for a in self._accounts if a.name == name), None)
        return currency_symbol(acct.currency if acct else None)

    def _style_ax(self, ax, fig):
        is_dark = ctk.get_appearance_mode() == "Dark"
        bg = "#2b2b2b" if is_dark else "#e4e4e4"
        fg = "#aaaaaa" if is_dark else "#444444"
        fig.patch.set_facecolor(bg)
        ax.set_facecolor(bg)
        ax.tick_params(colors=fg, labelsize=8)
        for spine in ax.spines.values():
            spine.set_edgecolor(fg)

    # ── Layout ───────────────────────────────────────────────────────────────

    def _build_toolbar(self):
        bar = ctk.CTkFrame(self, fg_color=("gray88", "gray18"), corner_radius=8)
        bar.grid(row=0, column=0, sticky="ew", padx=8, pady=(8, 0))

        ctk.CTkLabel(bar, text="Account:").pack(side="left", padx=(12, 4), pady=8)
        self._acct_combo = ctk.CTkComboBox(
            bar, values=[_ALL_LIQUID] + [a.name for a in self._accounts],
            variable=self._acct_var, width=160, state="readonly",
            command=lambda _: self._load(),
        )
        self._acct_combo.pack(side="left", padx=(0, 16))

        ctk.CTkLabel(bar, text="Period:").pack(side="left", padx=(0, 4))
        ctk.CTkSegmentedButton(
            bar,
            values=list(FORECAST_PERIODS),
            variable=self._period_var,
            command=lambda _: self._load(),
        ).pack(side="left", padx=(0, 16))

        ctk.CTkCheckBox(
            bar, text=f"Show last {DEFAULT_PAST_DAYS} days",
            variable=self._past_var, command=self._load,
        ).pack(side="left", padx=(0, 8))

    def _build_scenario_bar(self):
        bar = ctk.CTkFrame(self, fg_color=("gray88", "gray18"), corner_radius=8)
        bar.grid(row=1, column=0, sticky="ew", padx=8, pady=(8, 0))

        ctk.CTkLabel(bar, text="Scenarios:").pack(side="left", padx=(12, 4), pady=8)
        self._chips_frame = ctk.CTkFrame(bar, fg_color="transparent")
        self._chips_frame.pack(side="left", fill="x", expand=True)
        ctk.CTkButton(
            bar, text="+ Scenario", width=96, command=self._add_scenario,
        ).pack(side="right", padx=8, pady=6)
        self._rebuild_chips()

    def _rebuild_chips(self):
        for w in self._chips_frame.winfo_children():
            w.destroy()
        if not self._scenarios:
            ctk.CTkLabel(
                self._chips_frame, text="none", text_color="gray60",
            ).pack(side="left", padx=4)
            return
        for scenario in self._scenarios:
            chip = ctk.CTkFrame(self._chips_frame, fg_color=("gray80", "gray25"), corner_radius=6)
            chip.pack(side="left", padx=3)
            active_var = ctk.BooleanVar(value=scenario.is_active)
            ctk.CTkCheckBox(
                chip, text=scenario.name, width=20,
                variable=active_var, fg_color=scenario.color,
                command=lambda s=scenario, v=active_var: self._toggle_scenario(s, v),
            ).pack(side="left", padx=(6, 2), pady=3)
            ctk.CTkButton(
                chip, text="Edit", width=36, height=22,
                fg_color="transparent", text_color=("gray10", "gray90"),
                command=lambda s=scenario: self._edit_scenario(s),
            ).pack(side="left")
            ctk.CTkButton(
                chip, text="✕", width=22, height=22,
                fg_color="transparent", text_color="#F44336",
                command=lambda s=scenario: self._remove_scenario(s),
            ).pack(side="left", padx=(0, 4))

    def _build_chart_area(self):
        outer = ctk.CTkFrame(self, fg_color=("gray90", "gray20"), corner_radius=8)
        outer.grid(row=2, column=0, sticky="ew", padx=8, pady=8)
        outer.grid_columnconfigure(0, weight=1)

        self._chart_title = ctk.CTkLabel(
            outer, text="Projected Balance",
            font=ctk.CTkFont(size=13, weight="bold"),
        )
        self._chart_title.pack(pady=(10, 0))

        self._legend_frame = ctk.CTkFrame(outer, fg_color="transparent")
        self._legend_frame.pack()
        self._rebuild_legend()

        self._chart_fig = Figure(figsize=(8, 2.8), dpi=80, tight_layout=True)
        self._chart_ax = self._chart_fig.add_subplot(111)
        self._chart_mpl = FigureCanvasTkAgg(self._chart_fig, master=outer)
        self._chart_mpl.get_tk_widget().pack(fill="x", expand=True, padx=8, pady=(4, 8))

        self._installments_label = ctk.CTkLabel(outer, text="", text_color="gray60")
        self._installments_label.pack(pady=(0, 2))
        self._committed_label = ctk.CTkLabel(outer, text="", text_color="gray60")
        self._committed_label.pack(pady=(0, 6))

    def _rebuild_legend(self):
        for w in self._legend_frame.winfo_children():
            w.destroy()
        entries = [(_NET_COLOR, "Net"), (_CHECKING_COLOR, "Checking")]
        entries += [(s.color, s.name) for s in self._scenarios if s.is_active]
        for color, label in entries:
            tk.Label(self._legend_frame, bg=color, width=2).pack(side="left", padx=(8, 2))
            ctk.CTkLabel(
                self._legend_frame, text=label, font=ctk.CTkFont(size=11),
            ).pack(side="left", padx=(0, 8))

    def _build_table(self):
        outer = ctk.CTkFrame(self, fg_color=("gray90", "gray20"), corner_radius=8)
        outer.grid(row=3, column=0, sticky="nsew", padx=8, pady=(0, 8))
        outer.grid_columnconfigure(0, weight=1)
        outer.grid_rowconfigure(1, weight=1)

        # Header row
        header = ctk.CTkFrame(outer, fg_color=("gray80", "gray25"), corner_radius=0)
        header.grid(row=0, column=0, sticky="ew", padx=4, pady=(4, 0))
        for col, (text, w) in enumerate([("Month", 140), ("Closing", 120), ("Checking", 120), ("Lowest", 120)]):
            header.grid_columnconfigure(col, weight=1, minsize=w)
            ctk.CTkLabel(
                header, text=text,
                font=ctk.CTkFont(weight="bold"),
                anchor="center",
            ).grid(row=0, column=col, padx=4, pady=6, sticky="ew")

        self._table_scroll = ctk.CTkScrollableFrame(outer, fg_color="transparent")
        self._table_scroll.grid(row=1, column=0, sticky="nsew", padx=4, pady=(0, 4))
        for col in range(4):
            self._table_scroll.grid_columnconfigure(col, weight=1, minsize=120)

    # ── Scenario management ──────────────────────────────────────────────────

    def _add_scenario(self):
        self._scenario_seq += 1
        form = ScenarioForm(
            self.winfo_toplevel(),
            rules=self._forecast_svc.get_active_rules(),
            scenario_id=f"scenario-{self._scenario_seq}",
            color=SCENARIO_COLORS[(self._scenario_seq - 1) % len(SCENARIO_COLORS)],
        )
        if form.result:
            self._scenarios.append(form.result)
            self._on_scenarios_changed()

    def _edit_scenario(self, scenario: Scenario):
        form = ScenarioForm(
            self.winfo_toplevel(),
            rules=self._forecast_svc.get_active_rules(),
            scenario_id=scenario.id,
            color=scenario.color,
            scenario=scenario,
        )
        if form.result:
            form.result.is_active = scenario.is_active
            self._scenarios[self._scenarios.index(scenario)] = form.result
            self._on_scenarios_changed()

    def _toggle_scenario(self, scenario: Scenario, var: ctk.BooleanVar):
        scenario.is_active = var.get()
        self._rebuild_legend()
        self._load()

    def _remove_scenario(self, scenario: Scenario):
        self._scenarios.remove(scenario)
        self._on_scenarios_changed()

    def _on_scenarios_changed(self):
        self._rebuild_chips()
        self._rebuild_legend()
        self._load()

    # ── Data loading ─────────────────────────────────────────────────────────

    def _load(self):
        self._load_gen += 1
        gen = self._load_gen
        ref = today()
        account_id = self._get_account_id()
        period = self._period_var.get()
        past_days = DEFAULT_PAST_DAYS if self._past_var.get() else 0
        scenarios = [dataclasses.replace(s) for s in self._scenarios if s.is_active]

        def fetch():
            try:
                points = self._forecast_svc.get_projection(
                    ref, account_id=account_id, period=period, past_days=past_days,
                    scenarios=scenarios,
                )
                installments = self._forecast_svc.get_installments(ref)
                committed = self._forecast_svc.get_committed_by_category(ref)
            except ValidationError as exc:
                logger.warning("forecast_unavailable", error=str(exc))
                points, installments, committed = [], None, {}
            self.after(0, lambda: self._on_data_ready(gen, points, installments, committed))

        threading.Thread(target=fetch, daemon=True).start()

    def _on_data_ready(self, gen: int, points: list[ForecastPoint], installments, committed: dict):
        if gen != self._load_gen:
            return  # superseded by a newer load
        if not self.winfo_exists():
            return
        self._draw_line_chart(points)
        self._populate_table(summarize_by_month(points))
        if installments and installments.total_remaining > 0:
            self._installments_label.configure(
                text=f"Installments remaining: {format_currency(installments.total_remaining)} "
                     f"across {len(installments.payees)} plan(s)"
            )
        else:
            self._installments_label.configure(text="")
        if committed:
            parts = ", ".join(f"{c} {format_currency(v)}" for c, v in committed.items())
            self._committed_label.configure(text=f"Still committed this month: {parts}")
        else:
            self._committed_label.configure(text="")

    # ── Chart drawing ─────────────────────────────────────────────────────────

    def _draw_line_chart(self, points: list[ForecastPoint]):
        ax = self._chart_ax
        ax.clear()
        self._style_ax(ax, self._chart_fig)

        if not points:
            ax.text(0.5, 0.5, "No data", ha="center", va="center",
                    transform=ax.transAxes, color="gray")
            self._chart_mpl.draw_idle()
            return

        x = list(range(len(points)))
        ax.plot(x, [p.balance for p in points], color=_NET_COLOR, linewidth=1.6)
        ax.plot(x, [p.checking_balance for p in points], color=_CHECKING_COLOR,
                linewidth=1.0, linestyle="--")
        colors = {s.id: s.color for s in self._scenarios}
        for scenario_id in points[0].scenarios:
            ax.plot(x, [p.scenarios[scenario_id].balance for p in points],
                    color=colors.get(scenario_id, SCENARIO_COLORS[0]), linewidth=1.2)
        ax.axhline(0, color="#F44336", linewidth=0.8, linestyle=":")

        step = max(1, len(points) // 8)
        ax.set_xticks(x[::step])
        ax.set_xticklabels([points[i].date[5:] for i in x[::step]])
        ax.yaxis.set_major_formatter(
            lambda v, _: f"{v/1000:.0f}k" if abs(v) >= 1000 else f"{v:.0f}"
        )
        self._chart_mpl.draw_idle()

    # ── Table population ─────────────────────────────────────────────────────

    def _populate_table(self, months: list[MonthSummary]):
        for w in self._table_scroll.winfo_children():
            w.destroy()

        symbol = self._symbol()
        for row_idx, m in enumerate(months):
            bg = ("gray85", "gray22") if row_idx % 2 == 0 else ("gray90", "gray18")
            low_color = "#4CAF50" if m.lowest_balance >= 0 else "#F44336"

            for col, (text, color) in enumerate([
                (friendly_month(m.month), None),
                (format_currency(m.closing_balance, symbol), None),
                (format_currency(m.closing_checking, symbol), None),
                (format_currency(m.lowest_balance, symbol), low_color),
            ]):
                ctk.CTkLabel(
                    self._table_scroll,
                    text=text,
                    text_color=color or ("gray10", "gray90"),
                    fg_color=bg,
                    anchor="center",
                    corner_radius=0,
                ).grid(row=row_idx, column=col, padx=1, pady=1, sticky="ew")

import customtkinter as ctk

from models.balance_alert import BalanceAlert
from utils.constants import SEVERITY_COLORS
from utils.currency import format_currency
from utils.date_helpers import format_display_date


class AlertBanner(ctk.CTkFrame):
    """A dismissible colored banner for non-blocking notifications."""

    def __init__(self, master, message: str, color: str = "#2196F3",
                 action_text: str | None = None, action_cmd=None,
                 on_dismiss=None, **kwargs):
        super().__init__(master, fg_color=color, corner_radius=6, **kwargs)
        self._on_dismiss = on_dismiss
        self.grid_columnconfigure(0, weight=1)

        ctk.CTkLabel(
            self, text=message, text_color="white",
            anchor="w", padx=10, pady=6
        ).grid(row=0, column=0, sticky="ew")

        btn_frame = ctk.CTkFrame(self, fg_color="transparent")
        btn_frame.grid(row=0, column=1, padx=(0, 4))

        if action_text and action_cmd:
            ctk.CTkButton(
                btn_frame, text=action_text, width=60, height=24,
                fg_color="transparent", border_width=1, border_color="white",
                hover_color="#ffffff",
                text_color="white", command=action_cmd,
            ).pack(side="left", padx=2)

        ctk.CTkButton(
            btn_frame, text="✕", width=28, height=24,
            fg_color="transparent",
            hover_color="#ffffff",
            text_color="white",
            command=self._dismiss,
        ).pack(side="left")

    def _dismiss(self):
        if self._on_dismiss:
            self._on_dismiss()
        self.destroy()


def balance_alert_banner(master, alert: BalanceAlert, on_dismiss, action_cmd=None) -> AlertBanner:
    message = (
        f"{alert.account_name} drops to {format_currency(alert.projected_balance)} "
        f"on {format_display_date(alert.date)} after {alert.trigger_payee} "
        f"({format_currency(alert.trigger_amount)})."
    )
    return AlertBanner(
        master,
        message=message,
        color=SEVERITY_COLORS.get(alert.severity, SEVERITY_COLORS["warning"]),
        action_text="Forecast" if action_cmd else None,
        action_cmd=action_cmd,
        on_dismiss=on_dismiss,
    )

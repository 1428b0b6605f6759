import customtkinter as ctk


class ConfirmDialog(ctk.CTkToplevel):
    """Modal two-button prompt. `result` is True when the confirm button was pressed."""

    def __init__(self, master, title: str, message: str,
                 confirm_text: str = "Confirm", cancel_text: str = "Cancel",
                 destructive: bool = True, **kwargs):
        super().__init__(master, **kwargs)
        self.title(title)
        self.result = False
        self.resizable(False, False)
        self.grid_columnconfigure(0, weight=1)

        ctk.CTkLabel(
            self, text=message, wraplength=380, justify="left", padx=20, pady=16
        ).grid(row=0, column=0, sticky="ew")

        buttons = ctk.CTkFrame(self, fg_color="transparent")
        buttons.grid(row=1, column=0, pady=(0, 16), padx=20, sticky="e")

        ctk.CTkButton(
            buttons, text=cancel_text, width=90,
            fg_color="transparent", border_width=1,
            text_color=("gray10", "gray90"),
            command=self.destroy,
        ).pack(side="left", padx=(0, 8))

        confirm_colors = (
            {"fg_color": "#F44336", "hover_color": "#D32F2F"} if destructive else {}
        )
        ctk.CTkButton(
            buttons, text=confirm_text, width=90,
            command=self._confirm, **confirm_colors,
        ).pack(side="left")

        self.transient(master)
        self.grab_set()
        self._place_over(master)
        self.wait_window()

    def _place_over(self, master):
        self.update_idletasks()
        cx = master.winfo_x() + master.winfo_width() // 2
        cy = master.winfo_y() + master.winfo_height() // 2
        self.geometry(f"+{cx - self.winfo_width() // 2}+{cy - self.winfo_height() // 2}")

    def _confirm(self):
        self.result = True
        self.destroy()

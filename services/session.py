from dataclasses import dataclass, field


@dataclass
class SessionState:
    """Per-session state owned by the application shell.

    auto_run_done:    the startup recurring run has happened this session.
    processing:       a recurring run is committing; blocks re-entry.
    dismissed_alerts: (account_id, date) keys of balance alerts the user hid.
    """
    auto_run_done: bool = False
    processing: bool = False
    dismissed_alerts: set[tuple[int, str]] = field(default_factory=set)

    def reset(self):
        """Logout/restart: forget everything the session accumulated."""
        self.auto_run_done = False
        self.processing = False
        self.dismissed_alerts.clear()

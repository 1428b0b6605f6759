class ValidationError(ValueError):
    """Bad input data: malformed dates, non-positive amounts, unknown types."""


class ConfigurationError(ValueError):
    """Programmer error: an unknown frequency, custom unit or amount type."""


class ProcessorBusyError(RuntimeError):
    """Raised when the occurrence processor is re-entered mid-commit."""


class StaleRuleError(RuntimeError):
    """The stored rule cursor changed between load and commit."""

    def __init__(self, rule_id):
        super().__init__(f"Recurring rule {rule_id} was modified since it was loaded.")
        self.rule_id = rule_id


class RecurringCommitError(RuntimeError):
    """One or more rules failed to commit during a batch run.

    Postings in ``committed`` were written and are not rolled back; the
    batch can be retried safely because committed rules have already
    advanced their cursors.
    """

    def __init__(self, committed: list, failures: list):
        names = ", ".join(str(rule.id) for rule, _ in failures)
        super().__init__(f"Failed to commit recurring rule(s): {names}")
        self.committed = committed
        self.failures = failures

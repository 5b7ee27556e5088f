"""Quality gate error types."""


class GateError(Exception):
    """Base class for errors raised by the quality gate."""


class RuleNotFoundError(GateError, KeyError):
    """Raised when a rule id is not present in the catalog."""

    def __init__(self, rule_id: str):
        super().__init__(f"Rule not found: {rule_id}")
        self.rule_id = rule_id

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0])


class ConfigurationError(GateError, ValueError):
    """Raised for malformed configuration snapshots or rule updates."""


class AuditError(GateError, RuntimeError):
    """Dependency audit could not be run or its output could not be read.

    ``reason`` values:
      "missing"   -- audit command not installed
      "timeout"   -- audit command exceeded the configured timeout
      "parse"     -- output was empty or not JSON
      "failed"    -- any other OS-level failure
    """

    def __init__(self, message: str, reason: str = "failed"):
        super().__init__(message)
        self.reason = reason

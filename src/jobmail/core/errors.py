from __future__ import annotations


class JobmailError(RuntimeError):
    pass


class ConfigError(JobmailError):
    pass


class SelectorError(ConfigError):
    """The XPath query configured for a sender does not compile."""

    def __init__(self, selector: str, sender: str, reason: str = "") -> None:
        self.selector = selector
        self.sender = sender
        self.reason = reason
        msg = f"Invalid link selector {selector!r} for sender {sender!r}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ProviderError(JobmailError):
    """No configured model provider could be called successfully."""


class BudgetExceededError(JobmailError):
    pass


class ResponseFormatError(JobmailError):
    """The model answered with something that is not a listing array."""

    def __init__(self, message: str, raw: str = "") -> None:
        self.raw = raw or ""
        super().__init__(message)

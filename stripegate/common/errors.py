"""Error taxonomy shared by the processor client and checkout flow.

Every error carries a message that is safe to show to the shopper or the
store admin.
"""


class GatewayError(Exception):
    """Base class for errors surfaced at the checkout boundary."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(GatewayError):
    """Gateway is misconfigured (missing keys, SSL not enforced)."""


class FormValidationError(GatewayError):
    """Submitted checkout data rejected before reaching the processor."""


class ProcessorError(GatewayError):
    """Processor call failed or returned an error object."""

    def __init__(self, message: str, code: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class StorageError(GatewayError):
    """Database read/write failed during a submission."""


class OrderNotFoundError(LookupError):
    """Order id does not exist."""

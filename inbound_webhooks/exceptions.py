"""
Exceptions raised across the ingestion pipeline and the processing worker.
"""


class PayloadTooLargeError(Exception):
    """Request body exceeded the configured size bound."""

    def __init__(self, limit: int):
        super().__init__(f"Request body exceeds {limit} bytes")
        self.limit = limit


class WebhookParseError(Exception):
    """Body passed verification but is not a valid event for its provider.

    Permanent for the record: redelivering the same bytes can never succeed.
    """
    pass


class UnknownProviderError(LookupError):
    """No provider is registered under the requested route name."""
    pass


class ProviderConfigurationError(Exception):
    """A provider's verification settings are invalid for this environment."""
    pass

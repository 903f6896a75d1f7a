class DependencyUnavailable(Exception):
    """An external dependency is unreachable or answered with an error."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class CommerceUnavailable(DependencyUnavailable):
    """WooCommerce REST API."""


class MessagingUnavailable(DependencyUnavailable):
    """WhatsApp Cloud API."""


class StoreUnavailable(DependencyUnavailable):
    """PostgreSQL ledger."""


class ConfigurationMissing(Exception):
    """Credentials or destination settings are absent; not a transient failure."""

    def __init__(self, message: str, *, missing: list[str] | None = None):
        super().__init__(message)
        self.missing = missing or []


class MalformedUpstreamData(Exception):
    """An upstream payload did not match the expected order schema."""

    def __init__(self, message: str, *, errors: list[dict] | None = None, payload_id=None):
        super().__init__(message)
        self.errors = errors or []
        self.payload_id = payload_id

"""Custom exceptions for deliverypulse."""


class CollectorError(Exception):
    """Base exception for all collector errors."""


class ConfigError(CollectorError):
    """Raised for fatal startup problems: missing token, bad slug, empty repo list."""


class GraphQLError(CollectorError):
    """Raised when a GraphQL response carries an ``errors`` array."""

    def __init__(self, errors: list[dict]):
        self.errors = errors
        messages = "; ".join(str(e.get("message", e)) for e in errors)
        super().__init__(f"GraphQL query failed: {messages}")


class RateLimitError(CollectorError):
    """Raised when GitHub rate limit is exhausted and retries ran out."""

    def __init__(self, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__(f"rate limit exceeded, retry after {retry_after}s")

"""Exceptions raised by the order sync pipeline and its collaborators."""


class OrderSourceError(Exception):
    """A call to the Shopify order source failed."""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class RateLimitedError(OrderSourceError):
    """Shopify answered 429. The only failure the fetcher retries."""

    def __init__(self, message: str = "Shopify rate limit exceeded"):
        super().__init__(message, status_code=429)


class OrderSourceResponseError(OrderSourceError):
    """The response parsed but carried GraphQL errors or no orders payload."""

    def __init__(self, message: str, errors: list | None = None):
        self.errors = errors or []
        super().__init__(message)


class ShopNotFoundError(Exception):
    """No shop record exists for the given domain."""

    def __init__(self, shop_domain: str):
        self.shop_domain = shop_domain
        super().__init__(f"Shop not found: {shop_domain}")


class OrderSyncError(Exception):
    """A sync run aborted. The checkpoint has already been released."""

    def __init__(self, shop_domain: str, message: str):
        self.shop_domain = shop_domain
        self.message = message
        super().__init__(message)

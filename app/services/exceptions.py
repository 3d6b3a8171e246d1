class ServiceError(Exception):
    """Base exception for service-level errors."""


class RateLimitExceeded(ServiceError):
    pass


class StoreUnavailableError(ServiceError):
    """The backing store could not be reached or rejected the operation."""


class EmailDeliveryError(ServiceError):
    pass


class IdentityProviderError(ServiceError):
    pass


class PasswordUpdateFailed(ServiceError):
    pass

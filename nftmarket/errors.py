# errors.py
"""
Marketplace error taxonomy.

Services raise these; the FastAPI exception handler in main.py renders them
as ``{"detail": message}`` with the class status code. Anything else that
escapes a route is logged and returned as a 500.
"""


class MarketplaceError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(MarketplaceError):
    """Input is well-formed JSON but semantically invalid."""


class NotFound(MarketplaceError):
    """Referenced entity does not exist."""


class BusinessRuleError(MarketplaceError):
    """The request violates a marketplace rule (self-trade, already sold, ...)."""


class InsufficientBalance(BusinessRuleError):
    def __init__(self, message: str = "You don't have enough balance"):
        super().__init__(message)


class IllegalTransition(BusinessRuleError):
    def __init__(self, entity: str, current, target):
        super().__init__(f"{entity} cannot move from {current.value} to {target.value}")
        self.entity = entity
        self.current = current
        self.target = target


class Forbidden(MarketplaceError):
    status_code = 403


class UpstreamError(MarketplaceError):
    """An external collaborator (pinning gateway, image host) failed."""
    status_code = 502


class Unauthorized(MarketplaceError):
    status_code = 401

"""
Typed failures surfaced to callers.

Data variance (cycles, ambiguous matches, bogus AI entries, precedence
conflicts) is handled quietly inside the engine. Only misconfiguration and a
broken AI collaborator reach the caller as exceptions.
"""


class CategoryHubError(Exception):
    """Base class for all Category Hub failures."""


class MasterShopNotConfiguredError(CategoryHubError):
    """No master shop exists, or the requested shop is not a master."""


class ShopNotFoundError(CategoryHubError):
    """The requested target shop does not exist."""


class CategoryNotFoundError(CategoryHubError, LookupError):
    """An administrative action referenced an unknown category node."""


class ConfigurationError(CategoryHubError, ValueError):
    """Missing API key, unknown AI provider and similar setup problems."""


class SuggestionServiceError(CategoryHubError):
    """The AI collaborator failed or returned something unusable."""


class SuggestionTimeoutError(SuggestionServiceError):
    """The AI collaborator did not answer within the timeout."""


class InvalidTreeOperationError(CategoryHubError, ValueError):
    """An administrative tree edit would corrupt the hierarchy."""

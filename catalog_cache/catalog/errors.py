"""Caller-facing catalog errors, translated to HTTP responses in main.py."""


class CatalogError(Exception):
    """Base class for catalog lookup failures."""

    status_code = 500


class NotFoundError(CatalogError):
    """The entity does not exist upstream (or can never be fetched)."""

    status_code = 404

    def __init__(self, entity: str, slug: str):
        self.entity = entity
        self.slug = slug
        super().__init__(f'{entity.capitalize()} "{slug}" not found')


class UpstreamUnavailableError(CatalogError):
    """Nothing is cached and the upstream fetch failed."""

    status_code = 500

    def __init__(self, entity: str, slug: str, reason: str = ""):
        self.entity = entity
        self.slug = slug
        self.reason = reason
        message = f'Failed to fetch {entity} "{slug}". Please try again later.'
        super().__init__(message)

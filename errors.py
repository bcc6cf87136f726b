"""Error taxonomy shared by the marketplace operations.

Operations raise these before touching storage; the API layer renders them
as ``{"detail": ...}`` responses with the matching status code.
"""


class MarketplaceError(Exception):
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationFailed(MarketplaceError):
    status_code = 400


class NotAuthenticated(MarketplaceError):
    status_code = 401


class PermissionDenied(MarketplaceError):
    status_code = 403


class NotFound(MarketplaceError):
    status_code = 404


class Conflict(MarketplaceError):
    status_code = 409

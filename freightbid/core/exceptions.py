"""Error types shared by the quote and auction services.

Vendor exclusions and "no quotes" are values, not exceptions; see
TariffExclusion and NoQuotesFound.
"""


class FreightBidError(Exception):
    """Base class for errors surfaced to callers."""
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(FreightBidError):
    """Malformed or missing input. Never retried."""
    status_code = 400


class NotFoundError(FreightBidError):
    """Referenced auction, customer or bidder does not exist."""
    status_code = 404


class AuctionRejectedError(FreightBidError):
    """A business rule refused the request (closed, non-improving, cap...)."""
    status_code = 422


class ServerFault(FreightBidError):
    """Persistence failure. Opaque to callers and safe to retry."""
    status_code = 503

    def __init__(self, message: str = "Temporary server error, please retry"):
        super().__init__(message)

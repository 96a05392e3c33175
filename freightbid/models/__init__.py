from freightbid.models.customer import Customer, CustomerTransporterRelationship
from freightbid.models.transporter import Transporter, TransporterPrice
from freightbid.models.rate_card import (
    CustomerRateCard,
    RateCardPool,
    VendorZoneMapping,
    ZoneMappingSource,
)
from freightbid.models.auction import Auction, AuctionBid, AuctionStatus, AuctionType

__all__ = [
    # Customers
    "Customer",
    "CustomerTransporterRelationship",
    # Vendors
    "Transporter",
    "TransporterPrice",
    "CustomerRateCard",
    "RateCardPool",
    "VendorZoneMapping",
    "ZoneMappingSource",
    # Auctions
    "Auction",
    "AuctionBid",
    "AuctionStatus",
    "AuctionType",
]

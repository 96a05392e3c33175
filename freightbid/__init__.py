"""FreightBid: multi-vendor freight quote engine and reverse auction."""

"""Transit data: live arrivals and static reference data."""

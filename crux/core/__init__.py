"""crux core: market calendar, tiered cache and rate limiting."""

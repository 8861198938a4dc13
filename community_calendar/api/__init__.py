"""HTTP surface for community_calendar (aiohttp)."""

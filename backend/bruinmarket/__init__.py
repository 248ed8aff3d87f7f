"""BruinMarket realtime messaging backend."""

"""techwire: tech news aggregation with a two-tier artifact cache."""

__version__ = "0.4.0"

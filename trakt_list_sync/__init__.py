"""Keep curated Trakt lists in sync with Trakt's own charts."""

__version__ = "0.4.0"

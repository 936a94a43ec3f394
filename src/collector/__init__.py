"""Market snapshot collector: multi-provider market metrics, one snapshot per cycle."""

__version__ = "0.1.0"

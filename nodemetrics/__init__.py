"""Collectors that read Linux /proc and /sys and produce host metrics in Prometheus form."""

__version__ = "0.1.0"
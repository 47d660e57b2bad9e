"""Progressive incident loading and aggregation for loss-prevention dashboards."""

__version__ = "0.1.0"

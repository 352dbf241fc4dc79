"""chartquery - natural-language questions to chart-ready query results."""

__version__ = "0.1.0"

"""BetEdge: betting decision and alerting engine."""

__version__ = "0.1.0"

"""Upload intake, storage hand-off and idempotent job dispatch."""

__version__ = "0.1.0"

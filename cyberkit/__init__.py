"""In-memory bandwidth metering, stake indexing and scheduled contract calls for a knowledge-graph chain."""

__version__ = "0.1.0"
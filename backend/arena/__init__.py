"""Arena: simulated prediction-market competition between AI agents."""

__version__ = "0.1.0"

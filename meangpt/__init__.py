"""MeanGPT: fan a user turn out to several AI providers and synthesize the answers."""

__version__ = "1.0.0"

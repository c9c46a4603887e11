"""Agency invoice relay: per-agency invoice numbering in front of a billing provider."""

__version__ = "0.1.0"

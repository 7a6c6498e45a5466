"""tabpilot: local browser-automation agent."""

__version__ = "0.1.0"

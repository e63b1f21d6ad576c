"""hookpilot — GitHub webhook bot that dispatches sandboxed AI coding agents."""

__version__ = "0.1.0"

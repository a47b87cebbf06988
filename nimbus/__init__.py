"""Nimbus — weather questions answered by an AI agent, streamed over HTTP."""

__version__ = "0.1.0"

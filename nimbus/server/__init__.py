"""HTTP server for the weather agent.

Requires FastAPI and uvicorn; ``nimbus serve`` runs it.
"""

from nimbus.server.app import create_app

__all__ = ["create_app"]

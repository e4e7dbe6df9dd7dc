"""HTTP collaborators for Socket Mode."""

from .apps_connections import AppsConnectionsClient, ConnectionInfo
from .response_url import ResponseUrlClient

__all__ = [
    "AppsConnectionsClient",
    "ConnectionInfo",
    "ResponseUrlClient",
]

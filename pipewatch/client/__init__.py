"""
Remote CI/CD client for pipewatch

Example:
    >>> from pipewatch.client import GitLabClient
    >>>
    >>> client = GitLabClient('https://gitlab.example.com', token='glpat-...')
    >>> for project in client.fetch_projects():
    ...     print(project.path, project.last_activity)
"""

from .client import DEFAULT_TIMEOUT, GitLabClient, RemoteClient
from .exceptions import (
    APIError,
    ClientError,
    DecodeError,
    NetworkError,
    NotFound,
    RateLimited,
    Unauthorized,
)

__all__ = [
    "DEFAULT_TIMEOUT",
    "GitLabClient",
    "RemoteClient",
    "APIError",
    "ClientError",
    "DecodeError",
    "NetworkError",
    "NotFound",
    "RateLimited",
    "Unauthorized",
]

"""Collaborators for git, the VTEX platform, and notification channels."""

from vtexdeploy.clients.git import AheadBehind, CommitInfo, GitCLIReader, GitReader
from vtexdeploy.clients.vtex import PlatformClient, VTEXClient

__all__ = [
    "AheadBehind",
    "CommitInfo",
    "GitCLIReader",
    "GitReader",
    "PlatformClient",
    "VTEXClient",
]

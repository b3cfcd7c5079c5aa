"""External collaborators — fetch, process execution, cache and metadata storage."""

from slugforge.collaborators.cache_store import CacheStore, DirectoryCacheStore
from slugforge.collaborators.fetcher import Fetcher, HttpFetcher
from slugforge.collaborators.metadata_store import DirectoryMetadataStore, MetadataStore
from slugforge.collaborators.shell import CommandResult, ProcessRunner, ShellRunner

__all__ = [
    "CacheStore",
    "DirectoryCacheStore",
    "Fetcher",
    "HttpFetcher",
    "MetadataStore",
    "DirectoryMetadataStore",
    "CommandResult",
    "ProcessRunner",
    "ShellRunner",
]

"""Backend clients for the two systems under comparison."""

from .cms import CMSClient, QueryResult
from .github import BranchInfo, CommitInfo, ContentFile, GitHubClient

__all__ = [
    "BranchInfo",
    "CMSClient",
    "CommitInfo",
    "ContentFile",
    "GitHubClient",
    "QueryResult",
]

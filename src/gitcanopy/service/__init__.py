"""Repository data service and its caches."""

from gitcanopy.service.caches import (
    AvatarResolver,
    RepositoryCaches,
    github_avatar_url,
    gravatar_url,
)
from gitcanopy.service.repository import RepositoryService, repository_name_from_url
from gitcanopy.service.result import ReadResult, ReadStatus

__all__ = [
    "AvatarResolver",
    "ReadResult",
    "ReadStatus",
    "RepositoryCaches",
    "RepositoryService",
    "github_avatar_url",
    "gravatar_url",
    "repository_name_from_url",
]

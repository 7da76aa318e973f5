"""Per-service caches for branch lists, tag maps and avatar URLs."""

import hashlib
import os
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from cachetools import LRUCache, TTLCache

from gitcanopy.models import Branch, CanopySettings, TagMap


def cache_key(repo_path: Union[str, Path]) -> str:
    """Normalize a repository path so equivalent spellings share an entry."""
    return os.path.abspath(str(repo_path))


def gravatar_url(email: str) -> str:
    """Deterministic Gravatar identicon URL for an email."""
    digest = hashlib.md5(email.strip().lower().encode("utf-8")).hexdigest()
    return f"https://www.gravatar.com/avatar/{digest}?s=64&d=identicon"


def github_avatar_url(login: str) -> str:
    return f"https://github.com/{login}.png?size=64"


class AvatarResolver:
    """Memoized email -> avatar URL derivation.

    The URL is a pure function of the email (and the GitHub username map
    fixed at construction), so entries are never invalidated; the cache is
    only capped in size.
    """

    def __init__(
        self,
        github_usernames: Optional[Dict[str, str]] = None,
        max_entries: int = 500,
    ) -> None:
        self._usernames = {
            email.strip().lower(): login for email, login in (github_usernames or {}).items()
        }
        self._cache: LRUCache = LRUCache(maxsize=max_entries)

    def __call__(self, email: str) -> str:
        key = email.strip().lower()
        url = self._cache.get(key)
        if url is None:
            login = self._usernames.get(key)
            url = github_avatar_url(login) if login else gravatar_url(key)
            self._cache[key] = url
        return url

    def __len__(self) -> int:
        return len(self._cache)

    def clear(self) -> None:
        self._cache.clear()


class RepositoryCaches:
    """Branch-list and tag-map caches keyed by repository path.

    Both are small TTL caches: entries expire on their own and can be
    dropped early through ``invalidate`` when the watcher reports changes.
    """

    def __init__(
        self,
        settings: Optional[CanopySettings] = None,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize caches.

        Args:
            settings: Runtime settings providing sizes and TTLs
            timer: Clock used for expiry (injectable for tests)
        """
        settings = settings or CanopySettings()
        self.branches: TTLCache = TTLCache(
            maxsize=settings.branch_cache_size, ttl=settings.branch_cache_ttl, timer=timer
        )
        self.tags: TTLCache = TTLCache(
            maxsize=settings.tag_cache_size, ttl=settings.tag_cache_ttl, timer=timer
        )

    def get_branches(self, repo_path: Union[str, Path]) -> Optional[List[Branch]]:
        return self.branches.get(cache_key(repo_path))

    def set_branches(self, repo_path: Union[str, Path], branches: List[Branch]) -> None:
        self.branches[cache_key(repo_path)] = branches

    def get_tags(self, repo_path: Union[str, Path]) -> Optional[TagMap]:
        return self.tags.get(cache_key(repo_path))

    def set_tags(self, repo_path: Union[str, Path], tags: TagMap) -> None:
        self.tags[cache_key(repo_path)] = tags

    def invalidate(
        self,
        repo_path: Union[str, Path],
        branches: bool = True,
        tags: bool = True,
    ) -> None:
        """Drop cached entries for one repository."""
        key = cache_key(repo_path)
        if branches:
            self.branches.pop(key, None)
        if tags:
            self.tags.pop(key, None)

    def clear(self) -> None:
        self.branches.clear()
        self.tags.clear()

"""Watch-driven refresh of repository data and layout."""

from gitcanopy.sync.coordinator import RefreshCoordinator

__all__ = ["RefreshCoordinator"]

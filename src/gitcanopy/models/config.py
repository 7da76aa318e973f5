"""Configuration models."""

from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CanopySettings(BaseSettings):
    """Runtime settings for the data layer, layout engine and watcher.

    Values can be supplied through the constructor or environment variables
    prefixed with GITCANOPY_ (e.g., GITCANOPY_GIT_BINARY). Mappings such as
    ``github_usernames`` are read from the environment as JSON.
    """

    model_config = SettingsConfigDict(
        env_prefix="GITCANOPY_",
        case_sensitive=False,
        extra="ignore",
    )

    # Command execution
    git_binary: str = Field("git", description="Version-control binary to invoke")
    max_output_bytes: int = Field(
        default=10 * 1024 * 1024,  # 10 MiB
        description="Hard ceiling on captured standard output per command",
    )
    command_timeout: Optional[float] = Field(
        default=300.0,
        description="Seconds before a command is killed (None disables the timeout)",
    )
    command_history_size: int = Field(100, description="Entries kept in the command audit log")

    # Caches
    branch_cache_size: int = Field(10, description="Repositories kept in the branch cache")
    branch_cache_ttl: float = Field(30.0, description="Branch cache time-to-live in seconds")
    tag_cache_size: int = Field(10, description="Repositories kept in the tag cache")
    tag_cache_ttl: float = Field(60.0, description="Tag cache time-to-live in seconds")
    avatar_cache_size: int = Field(500, description="Emails memoized by the avatar resolver")

    # Data service
    diff_line_limit: int = Field(5000, description="Changed lines above which a diff is not fetched")
    default_commit_limit: int = Field(100, description="Commits fetched when no limit is given")
    github_usernames: Dict[str, str] = Field(
        default_factory=dict,
        description="Email -> GitHub login, used only for avatar enrichment",
    )

    # Layout
    lane_width: int = Field(40, description="Horizontal distance between lanes")
    row_height: int = Field(60, description="Vertical distance between commits")

    # Watcher
    debounce_ms: int = Field(100, description="Debounce window for repository change events")

    # Logging
    log_level: str = "INFO"

"""Configuration management backed by pydantic-settings."""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Harness settings loaded from environment variables and ``.env``."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # GitHub
    github_owner: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("github_owner", "vercel_git_repo_owner"),
    )
    github_repo: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("github_repo", "vercel_git_repo_slug"),
    )
    github_personal_access_token: Optional[str] = None
    github_branch: str = Field(
        default="main",
        validation_alias=AliasChoices("github_branch", "vercel_git_commit_ref"),
    )
    github_api_url: str = "https://api.github.com"
    github_content_path: str = "content/pages/home.md"
    github_content_dir: str = "content/pages"

    # CMS
    cms_base_url: str = "http://localhost:3000"
    cms_api_url: str = "http://localhost:3000/api/tina/gql"
    tina_public_is_local: bool = False
    nextauth_secret: Optional[str] = None

    # Application
    log_level: str = "INFO"

    @property
    def repository(self) -> str:
        """Return ``owner/repo`` for display purposes."""
        return f"{self.github_owner or '?'}/{self.github_repo or '?'}"

    @property
    def run_mode(self) -> str:
        return "local" if self.tina_public_is_local else "production"

    @property
    def has_github_credentials(self) -> bool:
        return bool(self.github_owner and self.github_repo and self.github_personal_access_token)


# Global settings instance
settings = Settings()

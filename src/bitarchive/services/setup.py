"""
Archive onboarding.

Quick setup turns a bare token into a working configuration: it looks up
the token's owner, finds or creates a private ``<login>/bit-archive``
repository, seeds the public directory and adopts the repository's
default branch. Advanced setup checks a configuration the user typed in.
"""

import httpx

from ..config import DEFAULT_BRANCH, DEFAULT_REPO_NAME, ArchiveConfig
from ..errors import AuthError, ConfigurationError, ConflictError, NotFoundError
from ..logging_config import get_logger
from .config_store import ConfigStore
from .github import GITHUB_API, GitHubClient

logger = get_logger(__name__)

REPO_DESCRIPTION = "Private image archive powered by Bit Archive"
PUBLIC_DIR_MARKER = ".gitkeep"


class SetupService:
    """Creates, verifies, persists and tears down archive configurations."""

    def __init__(
        self,
        store: ConfigStore,
        http_client: httpx.AsyncClient | None = None,
        api_base: str = GITHUB_API,
    ):
        self.store = store
        self.http_client = http_client
        self.api_base = api_base

    def _client(self, config: ArchiveConfig) -> GitHubClient:
        return GitHubClient(config, client=self.http_client, api_base=self.api_base)

    async def quick_setup(self, token: str, repo_name: str = DEFAULT_REPO_NAME) -> ArchiveConfig:
        """
        Provision the default archive repository for a token and save the config.

        Raises:
            ConfigurationError: If the token is empty
            AuthError: If the token is rejected
        """
        token = token.strip()
        if not token:
            raise ConfigurationError("Token is required", code="missing_token", user_message="Token is required.")

        bootstrap = ArchiveConfig(token=token, repo="")
        async with self._client(bootstrap) as github:
            user = await github.get_user()
            login = user.get("login")
            if not login:
                raise AuthError("Token owner could not be determined", code="unknown_login")

            repo = f"{login}/{repo_name}"
            try:
                info = await github.get_repository(repo)
                logger.info("setup_repository_found", repo=repo)
            except NotFoundError:
                info = await github.create_repository(repo_name, REPO_DESCRIPTION, private=True)

        config = ArchiveConfig(token=token, repo=info.get("full_name") or repo).with_branch(info.get("default_branch"))

        async with self._client(config) as github:
            try:
                await github.put_blob(PUBLIC_DIR_MARKER, "", "Initialize public folder")
            except ConflictError:
                logger.debug("setup_public_dir_exists", repo=config.repo)

        logger.info("quick_setup_completed", repo=config.repo, branch=config.branch)
        return self.store.save_config(config)

    async def advanced_setup(self, config: ArchiveConfig) -> ArchiveConfig:
        """
        Validate a user-supplied configuration against the remote and save it.

        The repository's default branch is adopted unless a non-default
        branch was chosen explicitly.

        Raises:
            ConfigurationError: If fields are missing or malformed
            NotFoundError: If the repository is not visible to the token
        """
        config.validate()
        async with self._client(config) as github:
            info = await github.get_repository()

        if config.branch in ("", DEFAULT_BRANCH):
            config = config.with_branch(info.get("default_branch"))

        logger.info("advanced_setup_completed", repo=config.repo, branch=config.branch)
        return self.store.save_config(config)

    async def delete_repository(self, config: ArchiveConfig) -> None:
        """Delete the archive repository on the remote and forget the configuration."""
        async with self._client(config) as github:
            await github.delete_repository()
        self.store.clear_config()

    def logout(self) -> None:
        self.store.clear_config()
        logger.info("logged_out")

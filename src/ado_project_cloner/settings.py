from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from . import utils
from .exceptions import CloneError

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

_TOKEN_ENV_VAR: Final[str] = "ADO_PAT"  # noqa: S105
_DEFAULT_TOKEN_PASS_PATH: Final[str] = "azure-devops/cli/token"  # noqa: S105
_ORGANIZATION_URL_ENV_VAR: Final[str] = "ADO_ORGANIZATION_URL"
_CLONE_PATH_ENV_VAR: Final[str] = "ADO_DEFAULT_CLONE_PATH"
_DEFAULT_CLONE_PATH: Final[str] = "~/Projects"


@dataclass(frozen=True)
class ConnectionSettings:
    """Connection settings for one organization."""

    organization_url: str
    personal_access_token: str
    default_clone_path: str = _DEFAULT_CLONE_PATH


def get_token(pass_path: str | None = None) -> str | None:
    """Get Azure DevOps PAT from pass path, env var ADO_PAT, or default pass location."""
    # Try pass path first
    if pass_path:
        return utils.get_pass_value(pass_path)

    # Try environment variable
    token: str | None = os.environ.get(_TOKEN_ENV_VAR)
    if token:
        return token

    # Try default pass path
    try:
        return utils.get_pass_value(_DEFAULT_TOKEN_PASS_PATH)
    except (ValueError, utils.PassError, FileNotFoundError):
        logger.warning("No Azure DevOps token specified nor found")
        return None


class SettingsProvider:
    """Resolves connection settings once and caches them for the lifetime of a run."""

    def __init__(self, organization_url: str | None = None, token_pass_path: str | None = None) -> None:
        self._organization_url = organization_url
        self._token_pass_path = token_pass_path
        self._settings: ConnectionSettings | None = None

    def get_settings(self) -> ConnectionSettings:
        if self._settings is not None:
            return self._settings

        organization_url = self._organization_url or os.environ.get(_ORGANIZATION_URL_ENV_VAR, "")
        if not organization_url:
            msg = f"No organization URL given. Pass --organization-url or set {_ORGANIZATION_URL_ENV_VAR}."
            raise CloneError(msg)

        token = get_token(self._token_pass_path)
        if not token:
            msg = f"No personal access token found. Pass --pat-pass-path or set {_TOKEN_ENV_VAR}."
            raise CloneError(msg)

        clone_path = os.environ.get(_CLONE_PATH_ENV_VAR) or _DEFAULT_CLONE_PATH
        self._settings = ConnectionSettings(
            organization_url=organization_url.rstrip("/"),
            personal_access_token=token,
            default_clone_path=str(Path(clone_path).expanduser()),
        )
        logger.debug(f"Resolved settings for organization {self._settings.organization_url}")
        return self._settings

import logging
import typing
from pathlib import Path

from acmebot.client.challenge_provisioner import HttpChallengeProvisioner
from acmebot.client.exceptions import CouldNotCompleteChallenge
from acmebot.plugin_base import PluginRegistry

logger = logging.getLogger(__name__)

"""
This module contains an HTTP challenge provisioner that writes key authorizations below the
document root of a web server that is already running.
"""

CHALLENGE_PATH = Path(".well-known") / "acme-challenge"


@PluginRegistry.register_plugin("webroot")
class WebrootProvisioner(HttpChallengeProvisioner):
    """Writes *http-01* key authorizations to */.well-known/acme-challenge/{token}* below a webroot."""

    class Config(HttpChallengeProvisioner.Config):
        type: typing.Literal["webroot"] = "webroot"
        path: str
        """The document root of the web server serving the identifiers."""

    def __init__(self, cfg: Config):
        super().__init__(cfg)
        self._directory = Path(cfg.path) / CHALLENGE_PATH

    def _token_path(self, token: str) -> Path:
        if "/" in token or token.startswith("."):
            raise ValueError(f"Invalid token {token!r}")
        return self._directory / token

    async def provision_http(self, token: str, key_authorization: str) -> None:
        path = self._token_path(token)
        logger.debug("Writing key authorization to %s", path)

        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            path.write_text(key_authorization)
        except OSError as e:
            logger.exception("Could not write the key authorization for token %s", token)
            raise CouldNotCompleteChallenge(token) from e

    async def cleanup_http(self, token: str) -> None:
        path = self._token_path(token)
        logger.debug("Removing %s", path)
        path.unlink(missing_ok=True)

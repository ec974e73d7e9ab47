import asyncio
import logging
import typing

from aiohttp import web

from acmebot.client.challenge_provisioner import HttpChallengeProvisioner
from acmebot.client.exceptions import CouldNotCompleteChallenge
from acmebot.plugin_base import PluginRegistry

logger = logging.getLogger(__name__)


@PluginRegistry.register_plugin("standalone")
class StandaloneProvisioner(HttpChallengeProvisioner):
    """Serves *http-01* key authorizations from an embedded web server.

    The server is started on the first provisioned token and stopped by :meth:`close`.
    """

    class Config(HttpChallengeProvisioner.Config):
        type: typing.Literal["standalone"] = "standalone"
        hostname: str = "0.0.0.0"
        port: int = 80

    def __init__(self, cfg: Config):
        super().__init__(cfg)
        self._hostname = cfg.hostname
        self._port = cfg.port
        self._key_authorizations: typing.Dict[str, str] = dict()
        self._runner: typing.Optional[web.AppRunner] = None
        self._lock = asyncio.Lock()

        self.app = web.Application()
        self.app.add_routes(
            [
                web.get("/.well-known/acme-challenge/{token}", self.handle_acme_challenge),
            ]
        )

    async def handle_acme_challenge(self, request: web.Request) -> web.Response:
        token = request.match_info["token"]
        if (key_authorization := self._key_authorizations.get(token)) is None:
            raise web.HTTPNotFound

        logger.debug("Serving key authorization for token %s", token)
        return web.Response(text=key_authorization)

    async def start(self) -> None:
        async with self._lock:
            if self._runner is not None:
                return

            runner = web.AppRunner(self.app)
            await runner.setup()
            try:
                await web.TCPSite(runner, self._hostname, self._port).start()
            except Exception:
                await runner.cleanup()
                raise

            self._runner = runner
            logger.info("Serving http-01 challenges on %s:%d", self._hostname, self._port)

    async def close(self) -> None:
        async with self._lock:
            if self._runner is not None:
                await self._runner.cleanup()
                self._runner = None

    async def provision_http(self, token: str, key_authorization: str) -> None:
        self._key_authorizations[token] = key_authorization
        try:
            await self.start()
        except OSError as e:
            self._key_authorizations.pop(token, None)
            raise CouldNotCompleteChallenge(token) from e

    async def cleanup_http(self, token: str) -> None:
        self._key_authorizations.pop(token, None)

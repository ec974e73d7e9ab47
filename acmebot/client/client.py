import logging
import ssl
import typing

import acme.messages
from aiohttp import ClientSession, ClientTimeout
from pydantic import Field
from pydantic_settings import BaseSettings

from acmebot.client.cache import OnceCell
from acmebot.client.keys import SigningKey
from acmebot.client.request import RequestHandler
from acmebot.client.retry import RetryPolicy, NONCE_RETRIES
from acmebot.client.session import AcmeSession
from acmebot.version import __version__

logger = logging.getLogger(__name__)


class AcmeClient:
    """ACME compliant client.

    Owns the HTTP session and the memoized directory of one ACME server. Accounts are bound to
    the client with :meth:`login`.
    """

    class Config(BaseSettings, extra="forbid"):
        directory: str
        """The ACME server's directory URL"""
        private_key: str
        """Path of the account key, a PEM-encoded RSA or EC key file"""
        contact: typing.Dict[str, str] = Field(default_factory=dict)
        """Contact info to supply on registration, may contain the keys *email* and *phone*"""
        server_cert: typing.Optional[str] = None
        """Path of an additional CA certificate to trust, for test servers"""
        retries: int = NONCE_RETRIES
        """How often a request is retried after a *badNonce* error"""
        poll_interval: float = 2.0
        """Time in seconds between polls of an order"""
        request_timeout: float = 30.0
        """Total timeout of a single HTTP request in seconds"""

    def __init__(
        self,
        *,
        directory_url: str,
        server_cert: str = None,
        retries: int = NONCE_RETRIES,
        request_timeout: float = 30.0,
    ):
        """Creates an :class:`AcmeClient` instance.

        Must be called from within a running event loop.

        :param directory_url: The ACME server's directory
        :param server_cert: Path of the server certificate to add to the SSL context
        :param retries: The number of times a request is retried when the server returns the error *badNonce*.
        :param request_timeout: Total timeout of a single HTTP request in seconds.
        """
        self._ssl_context = ssl.create_default_context()

        if server_cert:
            # Add our self-signed server cert for testing purposes.
            self._ssl_context.load_verify_locations(cafile=server_cert)

        self._session = ClientSession(
            headers={"User-Agent": f"acmebot Client {__version__}"},
            timeout=ClientTimeout(total=request_timeout),
        )

        self._directory_url = directory_url
        self._requests = RequestHandler(self._session, self._ssl_context)
        self._directory = OnceCell(
            lambda: self._requests.get_directory(self._directory_url)
        )
        self.retry_policy = RetryPolicy(retries)

    @classmethod
    def from_config(cls, cfg: Config) -> "AcmeClient":
        return cls(
            directory_url=cfg.directory,
            server_cert=cfg.server_cert,
            retries=cfg.retries,
            request_timeout=cfg.request_timeout,
        )

    @property
    def directory_url(self) -> str:
        return self._directory_url

    async def directory(self) -> acme.messages.Directory:
        """Returns the server's directory, fetching it on first use."""
        return await self._directory.get()

    def login(
        self,
        key: SigningKey,
        contact: typing.Dict[str, str] = None,
        only_return_existing: bool = False,
    ) -> AcmeSession:
        """Creates a session for the account bound to the given key.

        The account itself is resolved lazily, on the first request that needs it.

        :param key: The account's signing key.
        :param contact: :class:`dict` containing the contact info to supply on registration. May contain a key
            *phone* and a key *email*.
        :param only_return_existing: If True, the server must not create a new account.
        :return: The session.
        """
        # Filter empty strings
        contact = {k: v for k, v in (contact or {}).items() if v}
        registration = acme.messages.Registration.from_data(
            email=contact.get("email"),
            phone=contact.get("phone"),
            terms_of_service_agreed=True,
            only_return_existing=only_return_existing or None,
        )
        return AcmeSession(
            self._directory, self._requests, key, registration, self.retry_policy
        )

    async def close(self):
        """Closes the client's session.

        The client may not be used for requests anymore after it has been closed.
        """
        await self._session.close()

    async def __aenter__(self) -> "AcmeClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

import asyncio
import logging
import typing

import acme.messages
import josepy
from cryptography import x509

from acmebot.client.access import (
    AccountAccessor,
    OrderAccessor,
    AuthorizationAccessor,
    ChallengeAccessor,
    CertificateAccessor,
)
from acmebot.client.cache import OnceCell
from acmebot.client.jws import PayloadSigner
from acmebot.client.keys import SigningKey, thumbprint
from acmebot.client.nonce import NonceSource
from acmebot.client.request import RequestHandler
from acmebot.client.retry import RetryPolicy
from acmebot.models import messages

logger = logging.getLogger(__name__)


class AcmeSession:
    """Binds one account, given by its signing key, to the directory of an ACME server.

    The directory, the account URL and the public JWK with its thumbprint are resolved on first use and
    memoized. Concurrent first callers share one resolution.
    Sessions are created by :meth:`~acmebot.client.AcmeClient.login`.
    """

    def __init__(
        self,
        directory: OnceCell,
        requests: RequestHandler,
        key: SigningKey,
        registration: acme.messages.Registration,
        policy: RetryPolicy,
    ):
        self._directory = directory
        self._requests = requests
        self._key = key
        self._registration = registration
        self._nonces = NonceSource(self._fetch_nonce)

        signer = PayloadSigner(key)
        accessor_args = (requests, signer, self._nonces, policy)
        self._accounts = AccountAccessor(*accessor_args)
        self._orders = OrderAccessor(*accessor_args)
        self._authorizations = AuthorizationAccessor(*accessor_args)
        self._challenges = ChallengeAccessor(*accessor_args)
        self._certificates = CertificateAccessor(*accessor_args)

        self._account = OnceCell(self._resolve_account)
        self._public_jwk = OnceCell(self._key.public_jwk)
        self._thumbprint = OnceCell(self._compute_thumbprint)

    @property
    def nonces(self) -> NonceSource:
        return self._nonces

    async def directory(self) -> acme.messages.Directory:
        return await self._directory.get()

    async def account(self) -> messages.Account:
        """Returns the session's account, creating it on the server if necessary.

        :raises: :class:`~acmebot.client.exceptions.AcmeServerError` If the server rejected the
            registration, e.g. with *accountDoesNotExist* if only an existing account may be used.
        """
        return await self._account.get()

    async def account_url(self) -> str:
        return (await self.account()).kid

    async def create_order(
        self, identifiers: typing.Union[typing.List[dict], typing.List[str]]
    ) -> messages.CreatedResource:
        """Creates a new order for the given identifiers.

        :param identifiers: The identifiers, either as DNS names or as dicts with the keys *type*
            and *value*.
        :return: The created order and its URL.
        """
        directory = await self.directory()
        created = await self._orders.create(
            directory["newOrder"],
            await self.account_url(),
            messages.NewOrder.from_data(identifiers=identifiers),
        )
        logger.info("Created order %s", created.url)
        return created

    async def get_order(self, order_url: str) -> acme.messages.Order:
        return await self._orders.get(order_url, await self.account_url())

    async def get_authorization(
        self, authorization_url: str
    ) -> acme.messages.Authorization:
        return await self._authorizations.get(
            authorization_url, await self.account_url()
        )

    async def get_authorizations(
        self, authorization_urls: typing.Iterable[str]
    ) -> typing.List[acme.messages.Authorization]:
        return await asyncio.gather(
            *[self.get_authorization(url) for url in authorization_urls]
        )

    async def get_challenge(self, challenge_url: str) -> acme.messages.ChallengeBody:
        return await self._challenges.get(challenge_url, await self.account_url())

    async def get_challenges(
        self, challenge_urls: typing.Iterable[str]
    ) -> typing.List[acme.messages.ChallengeBody]:
        return await asyncio.gather(*[self.get_challenge(url) for url in challenge_urls])

    async def submit_challenge(
        self, challenge_url: str
    ) -> acme.messages.ChallengeBody:
        """Notifies the server that the challenge has been provisioned and may be validated."""
        logger.debug("Submitting challenge %s", challenge_url)
        return await self._challenges.submit(challenge_url, await self.account_url())

    async def submit_challenges(
        self, challenge_urls: typing.Iterable[str]
    ) -> typing.List[acme.messages.ChallengeBody]:
        return await asyncio.gather(
            *[self.submit_challenge(url) for url in challenge_urls]
        )

    async def finalize_order(
        self, finalize_url: str, csr: bytes
    ) -> acme.messages.Order:
        """Finalizes an order that is *ready*.

        :param finalize_url: The order's *finalize* URL.
        :param csr: The DER encoded certificate signing request.
        :return: The order as returned by the server, usually in status *processing* or *valid*.
        """
        logger.info("Finalizing order at %s", finalize_url)
        return await self._orders.finalize(
            finalize_url,
            await self.account_url(),
            messages.OrderFinalization.from_der(csr),
        )

    async def download_certificate(self, certificate_url: str) -> str:
        return await self._certificates.download(
            certificate_url, await self.account_url()
        )

    async def public_jwk(self) -> josepy.jwk.JWK:
        return await self._public_jwk.get()

    async def public_key_thumbprint(self) -> str:
        return await self._thumbprint.get()

    async def key_authorization(self, challenge: acme.messages.ChallengeBody) -> str:
        """Returns the key authorization for the given challenge.

        :param challenge: A challenge of a key authorization based type.
        """
        return challenge.chall.key_authorization(await self.public_jwk())

    async def revoke_certificate(
        self, certificate: x509.Certificate, reason: int = None
    ) -> None:
        """Revokes a certificate issued to this account.

        :param certificate: The certificate to revoke.
        :param reason: Optional RFC 5280 revocation reason code.
        """
        directory = await self.directory()
        await self._certificates.revoke(
            directory["revokeCert"], await self.account_url(), certificate, reason
        )
        logger.info("Revoked certificate with serial %x", certificate.serial_number)

    async def deactivate_account(self) -> messages.Account:
        """Deactivates the account. The server rejects any further requests signed with its key."""
        account = await self._accounts.update(
            await self.account_url(), messages.AccountDeactivation.create()
        )
        logger.info("Deactivated account %s", account.kid)
        return account

    async def _fetch_nonce(self) -> str:
        directory = await self.directory()
        return await self._requests.fetch_nonce(directory["newNonce"])

    async def _resolve_account(self) -> messages.Account:
        directory = await self.directory()
        account, url = await self._accounts.create(
            directory["newAccount"], self._registration
        )
        logger.info("Using account %s (%s)", url, account.status)
        return account

    async def _compute_thumbprint(self) -> str:
        return thumbprint(await self.public_jwk())

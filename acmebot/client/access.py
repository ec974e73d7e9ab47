"""Accessors for the resources of an ACME server.

Every accessor call has the same shape: fetch a nonce, sign the payload, POST it, propagate the
response's nonce and parse the typed body. The whole sequence is repeated under the session's
retry policy, so each attempt is signed with a fresh nonce.
"""
import logging
import typing

import acme.messages
from cryptography import x509
from cryptography.hazmat.primitives import serialization

from acmebot.client.exceptions import AcmeClientException
from acmebot.client.jws import PayloadSigner, Payload
from acmebot.client.nonce import NonceSource
from acmebot.client.request import RequestHandler, AcmeResponse
from acmebot.client.retry import RetryPolicy, with_retry
from acmebot.models import messages

logger = logging.getLogger(__name__)

POST_AS_GET = ""
"""The payload of a POST-as-GET request."""

CREATED = (200, 201)


class ResourceAccessor:
    def __init__(
        self,
        requests: RequestHandler,
        signer: PayloadSigner,
        nonces: NonceSource,
        policy: RetryPolicy,
    ):
        self._requests = requests
        self._signer = signer
        self._nonces = nonces
        self._policy = policy

    async def _signed_post(
        self,
        url: str,
        payload: Payload,
        key_id: str = None,
        expected: typing.Collection[int] = (200,),
    ) -> AcmeResponse:
        async def attempt():
            nonce = await self._nonces.get_nonce()
            if key_id is None:
                jws = await self._signer.sign(url, payload, nonce)
            else:
                jws = await self._signer.sign_with_key_id(url, key_id, payload, nonce)

            return await self._requests.post(url, jws, self._nonces, expected)

        return await with_retry(attempt, self._policy, f"POST {url}")

    @staticmethod
    def _location(response: AcmeResponse) -> str:
        if not response.location:
            logger.warning("No Location header in the response from %s", response.url)
            raise AcmeClientException(
                f"The server did not return the location of the resource created at {response.url}"
            )
        return response.location


class AccountAccessor(ResourceAccessor):
    async def create(
        self, new_account_url: str, registration: acme.messages.Registration
    ) -> messages.CreatedResource:
        """Creates the account or looks up the existing one bound to the signing key.

        Whether a missing account is created is controlled by the registration's
        *onlyReturnExisting* flag. The request carries the JWK since the account URL is not
        known yet.

        :param new_account_url: The *newAccount* URL.
        :param registration: The registration message.
        :return: The account and its URL.
        """
        response = await self._signed_post(
            new_account_url, registration, expected=CREATED
        )
        url = self._location(response)
        account = messages.Account.from_json(dict(response.json(), kid=url))
        return messages.CreatedResource(account, url)

    async def get(self, account_url: str) -> messages.Account:
        response = await self._signed_post(account_url, POST_AS_GET, key_id=account_url)
        return messages.Account.from_json(dict(response.json(), kid=account_url))

    async def update(self, account_url: str, update: Payload) -> messages.Account:
        response = await self._signed_post(account_url, update, key_id=account_url)
        return messages.Account.from_json(dict(response.json(), kid=account_url))


class OrderAccessor(ResourceAccessor):
    async def create(
        self, new_order_url: str, key_id: str, order: messages.NewOrder
    ) -> messages.CreatedResource:
        response = await self._signed_post(
            new_order_url, order, key_id=key_id, expected=CREATED
        )
        url = self._location(response)
        return messages.CreatedResource(
            acme.messages.Order.from_json(response.json()), url
        )

    async def get(self, order_url: str, key_id: str) -> acme.messages.Order:
        response = await self._signed_post(order_url, POST_AS_GET, key_id=key_id)
        return acme.messages.Order.from_json(response.json())

    async def finalize(
        self, finalize_url: str, key_id: str, finalization: messages.OrderFinalization
    ) -> acme.messages.Order:
        response = await self._signed_post(finalize_url, finalization, key_id=key_id)
        return acme.messages.Order.from_json(response.json())


class AuthorizationAccessor(ResourceAccessor):
    async def get(
        self, authorization_url: str, key_id: str
    ) -> acme.messages.Authorization:
        response = await self._signed_post(authorization_url, POST_AS_GET, key_id=key_id)
        return acme.messages.Authorization.from_json(response.json())


class ChallengeAccessor(ResourceAccessor):
    async def get(self, challenge_url: str, key_id: str) -> acme.messages.ChallengeBody:
        response = await self._signed_post(challenge_url, POST_AS_GET, key_id=key_id)
        return acme.messages.ChallengeBody.from_json(response.json())

    async def submit(
        self, challenge_url: str, key_id: str
    ) -> acme.messages.ChallengeBody:
        """Tells the server that the challenge is ready for validation.

        The payload is the empty JSON object, unlike the empty string of POST-as-GET.
        """
        response = await self._signed_post(challenge_url, {}, key_id=key_id)
        return acme.messages.ChallengeBody.from_json(response.json())


class CertificateAccessor(ResourceAccessor):
    async def download(self, certificate_url: str, key_id: str) -> str:
        """Downloads the certificate chain.

        :return: The PEM encoded chain, end-entity certificate first.
        """
        response = await self._signed_post(certificate_url, POST_AS_GET, key_id=key_id)
        return response.text()

    async def revoke(
        self,
        revoke_url: str,
        key_id: str,
        certificate: x509.Certificate,
        reason: int = None,
    ) -> None:
        revocation = messages.Revocation.from_der(
            certificate.public_bytes(serialization.Encoding.DER), reason
        )
        await self._signed_post(revoke_url, revocation, key_id=key_id)

import json
import logging
import typing

import josepy

from acmebot.client.exceptions import SigningError
from acmebot.client.keys import SigningKey
from acmebot.util import base64url

logger = logging.getLogger(__name__)

Payload = typing.Union[josepy.JSONDeSerializable, typing.Mapping[str, typing.Any], str]
"""What may be signed: a protocol message, a plain JSON object or a string.
The empty string is the payload of a POST-as-GET request."""


class JwsHeader(josepy.JSONObjectWithFields):
    """The protected header of an ACME request.

    `6.2. Request Authentication <https://tools.ietf.org/html/rfc8555#section-6.2>`_

    Exactly one of :attr:`jwk` and :attr:`kid` is set. The JWK is only used on the requests
    to *newAccount* (and *revokeCert* when signing with the certificate key), every other request
    identifies the account by its URL.
    """

    alg: str = josepy.Field("alg")
    nonce: str = josepy.Field("nonce")
    url: str = josepy.Field("url")
    jwk: josepy.jwk.JWK = josepy.Field(
        "jwk", omitempty=True, decoder=josepy.jwk.JWK.from_json
    )
    kid: str = josepy.Field("kid", omitempty=True)

    def __init__(self, **kwargs):
        if (kwargs.get("jwk") is None) == (kwargs.get("kid") is None):
            raise ValueError("Exactly one of jwk and kid must be set in the protected header")
        super().__init__(**kwargs)


class JwsObject(josepy.JSONObjectWithFields):
    """A JWS in flattened JSON serialization, the body of every ACME POST request."""

    protected: str = josepy.Field("protected")
    payload: str = josepy.Field("payload")
    signature: str = josepy.Field("signature")

    @property
    def signing_input(self) -> bytes:
        return f"{self.protected}.{self.payload}".encode("ascii")


def encode_payload(payload: Payload) -> bytes:
    if isinstance(payload, str):
        return payload.encode("utf-8")
    elif isinstance(payload, josepy.JSONDeSerializable):
        return payload.json_dumps().encode("utf-8")
    elif isinstance(payload, typing.Mapping):
        return json.dumps(payload).encode("utf-8")

    raise TypeError(
        f"Invalid payload type {type(payload).__name__}, it must be a message, a mapping or a string"
    )


class PayloadSigner:
    """Wraps protocol requests in signed JWS envelopes using an account's signing key."""

    def __init__(self, key: SigningKey):
        self._key = key

    async def sign(self, request_url: str, payload: Payload, nonce: str) -> JwsObject:
        """Signs the given payload, embedding the account's public key.

        :param request_url: The URL the request is sent to.
        :param payload: The request payload.
        :param nonce: The nonce to include in the protected header.
        :raises: :class:`~acmebot.client.exceptions.SigningError` If the key backend failed.
        :return: The signed envelope.
        """
        jwk = await self._key.public_jwk()
        header = JwsHeader(alg=self._key.alg.name, nonce=nonce, url=request_url, jwk=jwk)
        return await self._sign(header, payload)

    async def sign_with_key_id(
        self, request_url: str, key_id: str, payload: Payload, nonce: str
    ) -> JwsObject:
        """Signs the given payload, identifying the account by its key ID.

        :param request_url: The URL the request is sent to.
        :param key_id: The account URL.
        :param payload: The request payload.
        :param nonce: The nonce to include in the protected header.
        :raises: :class:`~acmebot.client.exceptions.SigningError` If the key backend failed.
        :return: The signed envelope.
        """
        header = JwsHeader(alg=self._key.alg.name, nonce=nonce, url=request_url, kid=key_id)
        return await self._sign(header, payload)

    async def _sign(self, header: JwsHeader, payload: Payload) -> JwsObject:
        protected = base64url(header.json_dumps(separators=(",", ":")))
        encoded_payload = base64url(encode_payload(payload))

        try:
            signature = await self._key.sign(f"{protected}.{encoded_payload}".encode("ascii"))
        except SigningError:
            raise
        except Exception as e:
            raise SigningError(f"Could not sign request to {header.url}") from e

        logger.debug("Signed request to %s with %s", header.url, "kid" if header.kid else "jwk")
        return JwsObject(
            protected=protected, payload=encoded_payload, signature=base64url(signature)
        )

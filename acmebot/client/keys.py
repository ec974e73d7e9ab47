import abc
import logging
import typing
from pathlib import Path

import josepy
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa, ec

from acmebot.client.exceptions import SigningError
from acmebot.util import base64url

logger = logging.getLogger(__name__)

EC_ALGORITHMS = {
    "secp256r1": josepy.jwa.ES256,
    "secp384r1": josepy.jwa.ES384,
    "secp521r1": josepy.jwa.ES512,
}


def thumbprint(jwk: josepy.jwk.JWK) -> str:
    """Returns the base64url encoded SHA-256 thumbprint of the given public key.

    The thumbprint is computed over the key's required members in lexicographic order
    without whitespace, i.e. ``{"e":...,"kty":"RSA","n":...}`` for RSA keys.
    See `RFC 7638 <https://tools.ietf.org/html/rfc7638>`_.
    """
    return base64url(jwk.thumbprint(hash_function=hashes.SHA256))


class SigningKey(abc.ABC):
    """An abstract base class for account key backends.

    The private key may live in memory or in a remote vault. Either way, the client only
    ever asks for the public key and for signatures.
    """

    alg: josepy.jwa.JWASignature
    """The JWS algorithm the key signs with."""

    @abc.abstractmethod
    async def sign(self, content: bytes) -> bytes:
        """Signs the given content.

        :param content: The JWS signing input.
        :raises: :class:`~acmebot.client.exceptions.SigningError` If the backend is not able to sign.
        :return: The raw signature bytes as they are placed in the JWS.
        """
        pass

    @abc.abstractmethod
    async def public_jwk(self) -> josepy.jwk.JWK:
        """Returns the public part of the key as a JWK."""
        pass


class LocalSigningKey(SigningKey):
    """Signing key backed by a private key held in memory."""

    def __init__(self, private_key: typing.Union[rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey]):
        if isinstance(private_key, rsa.RSAPrivateKey):
            self._key = josepy.jwk.JWKRSA(key=private_key)
            self.alg = josepy.jwa.RS256
        elif isinstance(private_key, ec.EllipticCurvePrivateKey):
            if private_key.curve.name not in EC_ALGORITHMS:
                raise ValueError(f"Unsupported curve {private_key.curve.name}")
            self._key = josepy.jwk.JWKEC(key=private_key)
            self.alg = EC_ALGORITHMS[private_key.curve.name]
        else:
            raise ValueError(f"Unsupported private key type {type(private_key).__name__}")

        self._public_key = self._key.public_key()

    @classmethod
    def from_file(cls, path: typing.Union[str, Path]) -> "LocalSigningKey":
        """Loads the account key from a PEM file.

        :param path: Path of the PEM-encoded RSA or EC private key.
        :raises: :class:`ValueError` If the file does not contain a usable private key.
        """
        with open(path, "rb") as pem:
            data = pem.read()

        try:
            private_key = serialization.load_pem_private_key(data, password=None)
        except (ValueError, TypeError) as e:
            raise ValueError(f"Bad Private Key in file {path}") from e

        return cls(private_key)

    async def sign(self, content: bytes) -> bytes:
        try:
            return self.alg.sign(self._key.key, content)
        except Exception as e:
            raise SigningError(f"Could not sign with {self.alg.name}") from e

    async def public_jwk(self) -> josepy.jwk.JWK:
        return self._public_key

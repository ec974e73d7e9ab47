import json
import logging
import ssl
import typing
from dataclasses import dataclass

import acme.messages
import josepy
from aiohttp import ClientSession

from acmebot.client.exceptions import AcmeClientException, AcmeServerError
from acmebot.client.jws import JwsObject
from acmebot.client.nonce import NonceSource

logger = logging.getLogger(__name__)

JOSE_CONTENT_TYPE = "application/jose+json"
PROBLEM_CONTENT_TYPE = "application/problem+json"


@dataclass
class AcmeResponse:
    """A fully read response of the ACME server."""

    url: str
    status: int
    headers: typing.Mapping[str, str]
    content_type: str
    body: bytes

    @property
    def location(self) -> typing.Optional[str]:
        return self.headers.get("Location")

    def json(self) -> typing.Any:
        return json.loads(self.body)

    def text(self) -> str:
        return self.body.decode("utf-8")


class RequestHandler:
    """Performs the HTTP exchanges with the ACME server.

    Maps error responses to :class:`~acmebot.client.exceptions.AcmeServerError` and feeds the
    *Replay-Nonce* header of every response into the session's nonce source.
    """

    def __init__(self, session: ClientSession, ssl_context: ssl.SSLContext = None):
        """Creates a :class:`RequestHandler` instance.

        :param session: The HTTP session to send requests with.
        :param ssl_context: SSL context used to verify the server's certificate.
        """
        self._session = session
        self._ssl_context = ssl_context

    async def get_directory(self, url: str) -> acme.messages.Directory:
        """Fetches the server's directory with a plain GET request.

        :param url: The directory URL.
        :raises: :class:`~acmebot.client.exceptions.AcmeServerError` If the server answered with an error.
        :return: The parsed directory.
        """
        async with self._session.get(url, ssl=self._ssl_context) as resp:
            response = await self._read(url, resp)

        self._raise_for_status(response)
        logger.debug("Fetched directory from %s", url)
        try:
            return acme.messages.Directory.from_json(response.json())
        except (ValueError, josepy.errors.DeserializationError) as e:
            raise AcmeClientException(f"Could not parse the directory at {url}") from e

    async def fetch_nonce(self, url: str) -> str:
        """Requests a fresh nonce from the server's *newNonce* endpoint.

        :param url: The *newNonce* URL.
        :raises: :class:`~acmebot.client.exceptions.AcmeServerError` If the server answered with an error.
        :return: The nonce from the *Replay-Nonce* header, or an empty string if it was missing.
        """
        async with self._session.head(url, ssl=self._ssl_context) as resp:
            response = await self._read(url, resp)

        self._raise_for_status(response)
        nonce = response.headers.get("Replay-Nonce", "")
        logger.debug("Fetched nonce %s", nonce)
        return nonce

    async def post(
        self,
        url: str,
        jws: JwsObject,
        nonces: NonceSource,
        expected: typing.Collection[int] = (200,),
    ) -> AcmeResponse:
        """Sends a signed request to the server.

        :param url: The request URL.
        :param jws: The signed request body.
        :param nonces: Nonce source that receives the nonce of the response.
        :param expected: The status codes the caller expects on success.
        :raises: :class:`~acmebot.client.exceptions.AcmeServerError` If the server answered with a status
            code of 400 or above.
        :return: The response.
        """
        logger.debug("POST %s", url)
        async with self._session.post(
            url,
            data=jws.json_dumps(),
            headers={"Content-Type": JOSE_CONTENT_TYPE},
            ssl=self._ssl_context,
        ) as resp:
            response = await self._read(url, resp)

        nonces.update(response.headers.get("Replay-Nonce"))
        self._raise_for_status(response)

        if response.status not in expected:
            logger.warning(
                "Unexpected status code %d from %s, expected one of %s",
                response.status,
                url,
                ", ".join(str(code) for code in expected),
            )

        return response

    @staticmethod
    async def _read(url, resp) -> AcmeResponse:
        return AcmeResponse(
            url=url,
            status=resp.status,
            headers=resp.headers,
            content_type=resp.content_type,
            body=await resp.read(),
        )

    @staticmethod
    def _raise_for_status(response: AcmeResponse) -> None:
        if response.status < 400:
            return

        error = None
        if response.content_type == PROBLEM_CONTENT_TYPE:
            try:
                error = acme.messages.Error.from_json(response.json())
            except (ValueError, josepy.errors.DeserializationError):
                logger.warning("Could not parse problem document from %s", response.url)

        if error is not None:
            logger.debug("%s returned %s: %s", response.url, response.status, error)
            raise AcmeServerError(response.url, response.status, error=error)

        raise AcmeServerError(
            response.url,
            response.status,
            body=response.body.decode("utf-8", errors="replace"),
        )

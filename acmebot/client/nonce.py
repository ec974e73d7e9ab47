import asyncio
import logging
import typing

from acmebot.client.exceptions import AcmeClientException

logger = logging.getLogger(__name__)


class NonceSource:
    """Holds the most recent anti-replay nonce of a session.

    Every response may carry a fresh nonce in its *Replay-Nonce* header, which is recorded via
    :meth:`update`. :meth:`get_nonce` hands out the latest nonce and forgets it, since the server
    accepts each nonce only once. If no nonce is known, one is fetched from the server's
    *newNonce* endpoint; concurrent callers wait for that fetch instead of racing it.
    """

    def __init__(self, fetch: typing.Callable[[], typing.Awaitable[str]]):
        """Creates a :class:`NonceSource` instance.

        :param fetch: Coroutine function that requests a new nonce from the server.
        """
        self._fetch = fetch
        self._nonce: typing.Optional[str] = None
        self._lock = asyncio.Lock()

    def update(self, nonce: typing.Optional[str]) -> None:
        """Records a freshly observed nonce, replacing any older one.

        :param nonce: The nonce. Empty values are ignored.
        """
        if nonce:
            logger.debug("Storing new nonce %s", nonce)
            self._nonce = nonce

    async def get_nonce(self) -> str:
        """Returns the most recent nonce, fetching one if none is known.

        :raises: :class:`~acmebot.client.exceptions.AcmeClientException` If the server did not
            hand out a nonce.
        :return: The nonce to use for the next request.
        """
        async with self._lock:
            if self._nonce is None:
                # A nonce observed while fetching stays available for the next caller.
                nonce = await self._fetch()
                logger.debug("Using fetched nonce %s", nonce)
            else:
                nonce, self._nonce = self._nonce, None

        if not nonce:
            raise AcmeClientException("The server did not provide a nonce")

        return nonce

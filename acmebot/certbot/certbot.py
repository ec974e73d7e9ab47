import asyncio
import logging
import typing

from acmebot.certbot.process import OrderProcess, POLL_INTERVAL
from acmebot.certbot.store import CertificateStore
from acmebot.client import AcmeSession, ProvisioningStrategy
from acmebot.models import CertificateRequest

logger = logging.getLogger(__name__)


class CertBot:
    """Obtains certificates for certificate requests.

    Runs at most one :class:`~acmebot.certbot.process.OrderProcess` per request at a time. Submitting
    a request that is already being processed returns the running process's outcome.
    """

    def __init__(
        self,
        session: AcmeSession,
        store: CertificateStore,
        strategy_factory: typing.Callable[[CertificateRequest], ProvisioningStrategy],
        poll_interval: float = POLL_INTERVAL,
    ):
        """Creates a :class:`CertBot` instance.

        :param session: The session of the account that orders the certificates.
        :param store: The store that creates the CSRs and receives the certificates.
        :param strategy_factory: Returns the provisioning backends to use for a request.
        :param poll_interval: The delay in seconds between polls of an order.
        """
        self._session = session
        self._store = store
        self._strategy_factory = strategy_factory
        self._poll_interval = poll_interval
        self._processes: typing.Dict[CertificateRequest, asyncio.Task] = {}

    def submit(
        self, request: CertificateRequest, timeout: float = None
    ) -> "asyncio.Future[str]":
        """Starts processing the given request, unless it is already being processed.

        Must be called from within a running event loop.

        :param request: The certificate request.
        :param timeout: Deadline in seconds for the whole process. Once it passes, the process is
            cancelled and the returned future fails with :class:`asyncio.TimeoutError`. The order
            on the server is left alone.
        :return: Future that resolves with the PEM encoded certificate chain.
        """
        if (task := self._processes.get(request)) is not None:
            logger.debug("Request %s is already being processed", request.certificate_name)
            return task

        process = OrderProcess(
            request,
            self._session,
            self._strategy_factory(request),
            self._store,
            self._poll_interval,
        )
        task = asyncio.ensure_future(asyncio.wait_for(process.run(), timeout))
        self._processes[request] = task
        task.add_done_callback(lambda _: self._remove(request, task))

        logger.info("Processing request %s", request.certificate_name)
        return task

    async def check(self, request: CertificateRequest, timeout: float = None) -> str:
        """Waits for the running process of the given request.

        Unlike with :meth:`submit`, the process keeps running if the timeout expires.

        :param request: The certificate request.
        :param timeout: Timeout in seconds.
        :raises:

            * :class:`KeyError` If the request is not being processed.
            * :class:`asyncio.TimeoutError` If the process did not finish in time.

        :return: The PEM encoded certificate chain.
        """
        task = self._processes.get(request)
        if task is None:
            raise KeyError(f"No process for request {request.certificate_name}")

        return await asyncio.wait_for(asyncio.shield(task), timeout)

    def is_processing(self, request: CertificateRequest) -> bool:
        return request in self._processes

    def _remove(self, request: CertificateRequest, task: asyncio.Task) -> None:
        if self._processes.get(request) is task:
            del self._processes[request]

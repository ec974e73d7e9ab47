import asyncio
import datetime
import logging
import typing

from acmebot.certbot.certbot import CertBot
from acmebot.certbot.storage import RequestStorage
from acmebot.certbot.store import CertificateStore
from acmebot.models import CertificateRequest

logger = logging.getLogger(__name__)

RENEWAL_INTERVAL = datetime.timedelta(days=60)
MAX_EXECUTION_TIME = 600.0


class Runner:
    """Processes the pending certificate requests once.

    A request is processed if there is no certificate for it in the store yet, or if its
    certificate expires within the renewal interval.
    """

    def __init__(
        self,
        certbot: CertBot,
        storage: RequestStorage,
        store: CertificateStore,
        renewal_interval: datetime.timedelta = RENEWAL_INTERVAL,
        max_execution_time: float = MAX_EXECUTION_TIME,
    ):
        self._certbot = certbot
        self._storage = storage
        self._store = store
        self._renewal_interval = renewal_interval
        self._max_execution_time = max_execution_time

    async def due_requests(self) -> typing.List[CertificateRequest]:
        requests = await self._storage.pending()
        stored = set(await self._store.certificate_names())
        expiring = set(await self._store.expiring_certificates(self._renewal_interval))

        due = []
        for request in requests:
            name = request.certificate_name
            if name not in stored:
                due.append(request)
            elif name in expiring:
                logger.info("Certificate %s is due for renewal", name)
                due.append(request)
            else:
                logger.debug("Certificate %s is up to date", name)
                await self._storage.remove(request)

        return due

    async def run(self) -> typing.List[CertificateRequest]:
        """Submits every due request and waits for all of them.

        :return: The requests that failed.
        """
        logger.info("Certificate request processing started")

        requests = await self.due_requests()
        results = await asyncio.gather(
            *[
                self._certbot.submit(request, timeout=self._max_execution_time)
                for request in requests
            ],
            return_exceptions=True,
        )

        failed = []
        for request, result in zip(requests, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Error while processing certificate request %s",
                    request.certificate_name,
                    exc_info=result,
                )
                failed.append(request)
            else:
                logger.info("Certificate request processed: %s", request.certificate_name)
                await self._storage.remove(request)

        if not requests:
            logger.info("No more certificate requests found")

        logger.info("Certificate request processing ended")
        return failed

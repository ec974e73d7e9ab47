import abc
import logging
import typing

from acmebot.models import CertificateRequest

logger = logging.getLogger(__name__)


class RequestStorage(abc.ABC):
    """An abstract base class for the queue of certificate requests."""

    @abc.abstractmethod
    async def pending(self) -> typing.List[CertificateRequest]:
        """Returns the requests that have not been completed yet."""
        pass

    @abc.abstractmethod
    async def remove(self, request: CertificateRequest) -> None:
        """Removes a completed request from the queue."""
        pass


class ConfigRequestStorage(RequestStorage):
    """Serves the requests listed in the config file.

    Completed requests are only forgotten for the lifetime of the instance, the next run
    starts from the config file again.
    """

    def __init__(self, requests: typing.Iterable[CertificateRequest]):
        self._requests = list(dict.fromkeys(requests))

    async def pending(self) -> typing.List[CertificateRequest]:
        return list(self._requests)

    async def remove(self, request: CertificateRequest) -> None:
        try:
            self._requests.remove(request)
        except ValueError:
            logger.debug("Request %s was not pending", request.certificate_name)

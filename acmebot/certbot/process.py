import asyncio
import enum
import logging
import typing

import acme.messages

from acmebot.certbot.exceptions import OrderFailed
from acmebot.certbot.store import CertificateStore
from acmebot.client import AcmeSession, AuthorizationProvisioner, ProvisioningStrategy
from acmebot.models import CertificateRequest

logger = logging.getLogger(__name__)

POLL_INTERVAL = 2.0


class ProcessState(enum.Enum):
    CREATED = "created"
    PROVISIONING = "provisioning"
    AWAITING_VALIDATION = "awaiting_validation"
    READY = "ready"
    FINALIZING = "finalizing"
    VALID = "valid"
    INVALID = "invalid"
    FAILED = "failed"


class OrderProcess:
    """Drives one order from creation to the stored certificate.

    The process reacts to the status of the order as reported by the server:

    * *pending*, the first time: provision all authorizations, submit their challenges, poll.
    * *pending* or *processing*: wait for the poll interval, poll again.
    * *ready*: obtain a CSR from the certificate store and finalize the order.
    * *valid*: download the chain, upload it to the store and resolve :attr:`certificate`.
    * *invalid*: fail with :class:`~acmebot.certbot.exceptions.OrderFailed`.
    """

    def __init__(
        self,
        request: CertificateRequest,
        session: AcmeSession,
        strategy: ProvisioningStrategy,
        store: CertificateStore,
        poll_interval: float = POLL_INTERVAL,
    ):
        self.request = request
        self.state = ProcessState.CREATED
        self.order_url: typing.Optional[str] = None
        self.certificate: asyncio.Future = asyncio.get_running_loop().create_future()
        """Resolves with the PEM encoded chain, or with the error that ended the process."""

        self._session = session
        self._store = store
        self._poll_interval = poll_interval
        self._provisioner = AuthorizationProvisioner(session, strategy)

    async def run(self) -> str:
        """Runs the process until the certificate has been stored or the order failed.

        :return: The PEM encoded certificate chain.
        """
        try:
            created = await self._session.create_order(self.request.identifiers())
            self.order_url = created.url
            order = created.resource

            while not self.certificate.done():
                order = await self._dispatch(order)
        except Exception as e:
            if self.state is not ProcessState.INVALID:
                self._transition(ProcessState.FAILED)
            self._fail(e)
        finally:
            await self._provisioner.cleanup()
            if not self.certificate.done():
                self.certificate.cancel()

        return await self.certificate

    async def _dispatch(self, order: acme.messages.Order) -> acme.messages.Order:
        status = order.status

        if status == acme.messages.STATUS_PENDING:
            if self.state is ProcessState.CREATED:
                await self._provision(order)
            await asyncio.sleep(self._poll_interval)
            return await self._session.get_order(self.order_url)
        elif status == acme.messages.STATUS_PROCESSING:
            await asyncio.sleep(self._poll_interval)
            return await self._session.get_order(self.order_url)
        elif status == acme.messages.STATUS_READY:
            self._transition(ProcessState.READY)
            csr = await self._store.create_csr(self.request)
            self._transition(ProcessState.FINALIZING)
            return await self._session.finalize_order(order.finalize, csr)
        elif status == acme.messages.STATUS_VALID:
            chain = await self._session.download_certificate(order.certificate)
            await self._store.upload(self.request.certificate_name, chain)
            self._transition(ProcessState.VALID)
            self._resolve(chain)
            return order
        elif status == acme.messages.STATUS_INVALID:
            self._transition(ProcessState.INVALID)
            raise OrderFailed(order, self.order_url)

        raise ValueError(f"Unexpected status {status} of order {self.order_url}")

    async def _provision(self, order: acme.messages.Order) -> None:
        self._transition(ProcessState.PROVISIONING)
        challenges = await self._provisioner.provision(order.authorizations)

        await self._session.submit_challenges(
            [
                challenge.uri
                for challenge in challenges
                if challenge.status == acme.messages.STATUS_PENDING
            ]
        )
        self._transition(ProcessState.AWAITING_VALIDATION)

    def _transition(self, state: ProcessState) -> None:
        logger.info(
            "Order %s for %s: %s -> %s",
            self.order_url,
            self.request.certificate_name,
            self.state.value,
            state.value,
        )
        self.state = state

    def _resolve(self, chain: str) -> None:
        if not self.certificate.done():
            self.certificate.set_result(chain)

    def _fail(self, error: Exception) -> None:
        if not self.certificate.done():
            self.certificate.set_exception(error)

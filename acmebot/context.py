import datetime
import logging
import typing
from dataclasses import dataclass, field

from acmebot.certbot import CertBot, CertificateStore, ConfigRequestStorage, RequestStorage, Runner
from acmebot.client import (
    AcmeClient,
    AcmeSession,
    DnsChallengeProvisioner,
    HttpChallengeProvisioner,
    LocalSigningKey,
    ProvisioningStrategy,
    SigningKey,
)
from acmebot.config import Config, provisioner_registry, store_registry
from acmebot.models import CertificateRequest

logger = logging.getLogger(__name__)


@dataclass
class Context:
    """Holds the collaborators of one run of the application.

    Built once by :meth:`from_config` and handed to whoever needs them.
    """

    client: AcmeClient
    account_key: SigningKey
    store: CertificateStore
    storage: RequestStorage
    contact: typing.Dict[str, str] = field(default_factory=dict)
    http_provisioner: typing.Optional[HttpChallengeProvisioner] = None
    dns_provisioner: typing.Optional[DnsChallengeProvisioner] = None
    poll_interval: float = 2.0
    renewal_interval: datetime.timedelta = datetime.timedelta(days=60)
    max_execution_time: float = 600.0

    _session: typing.Optional[AcmeSession] = field(default=None, init=False, repr=False)

    @classmethod
    def from_config(cls, config: Config) -> "Context":
        """Creates the context described by the given config.

        Must be called from within a running event loop.
        """

        def provisioner(cfg):
            return provisioner_registry.create(cfg) if cfg is not None else None

        return cls(
            account_key=LocalSigningKey.from_file(config.client.private_key),
            client=AcmeClient.from_config(config.client),
            store=store_registry.create(config.store),
            storage=ConfigRequestStorage(config.requests),
            contact=dict(config.client.contact),
            http_provisioner=provisioner(config.http_provisioner),
            dns_provisioner=provisioner(config.dns_provisioner),
            poll_interval=config.client.poll_interval,
            renewal_interval=datetime.timedelta(days=config.renewal_interval),
            max_execution_time=config.max_execution_time,
        )

    def session(self) -> AcmeSession:
        """Returns the session of the configured account."""
        if self._session is None:
            self._session = self.client.login(self.account_key, self.contact)
        return self._session

    def strategy(self, request: CertificateRequest) -> ProvisioningStrategy:
        return ProvisioningStrategy(http=self.http_provisioner, dns=self.dns_provisioner)

    def certbot(self) -> CertBot:
        return CertBot(self.session(), self.store, self.strategy, self.poll_interval)

    def runner(self) -> Runner:
        return Runner(
            self.certbot(),
            self.storage,
            self.store,
            renewal_interval=self.renewal_interval,
            max_execution_time=self.max_execution_time,
        )

    async def close(self) -> None:
        provisioners = {id(p): p for p in (self.http_provisioner, self.dns_provisioner) if p}
        for provisioner in provisioners.values():
            await provisioner.close()

        await self.client.close()

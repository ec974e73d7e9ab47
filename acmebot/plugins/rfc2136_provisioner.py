import asyncio
import contextlib
import logging
import typing

import dns.asyncquery
import dns.asyncresolver
import dns.name
import dns.tsigkeyring
import dns.update
from pydantic import Field

from acmebot.client.challenge_provisioner import DnsChallengeProvisioner
from acmebot.client.exceptions import CouldNotCompleteChallenge
from acmebot.plugin_base import PluginRegistry

logger = logging.getLogger(__name__)

"""
This module contains a DNS challenge provisioner using RFC2136 TSIG updates

It looks up the zone name using the TSIG credentials on the resolver
"""


@PluginRegistry.register_plugin("rfc2136")
class RFC2136Provisioner(DnsChallengeProvisioner):
    """
    Publishes DNS-01 TXT records using RFC 2136 dynamic updates.

    After the update, the record is looked up until it is visible, so that the CA does not
    query the DNS before the record has propagated.
    """

    POLLING_DELAY = 1.0
    """Time in seconds between consecutive DNS requests."""

    class Config(DnsChallengeProvisioner.Config):
        type: typing.Literal["rfc2136"] = "rfc2136"
        """The type of challenge provisioner"""
        server: str
        """DNS server to use for TSIG updates"""
        keyid: str
        """TSIG key ID to use for TSIG updates"""
        alg: str
        """TSIG algorithm to use for TSIG updates"""
        secret: str
        """TSIG secret to use for TSIG updates"""
        ttl: int = 60
        """TTL of the published records"""
        dns_servers: typing.List[str] = Field(default_factory=list)
        """DNS servers to check the propagation of records with, defaults to the update server"""
        polling_timeout: float = 60.0
        """Time in seconds after which publishing a record is considered failed"""

    def __init__(self, cfg: Config):
        super().__init__(cfg)
        self._ttl = cfg.ttl
        self._polling_timeout = cfg.polling_timeout

        self.keyring = dns.tsigkeyring.from_text({cfg.keyid: (cfg.alg, cfg.secret)})
        self.resolver = dns.asyncresolver.Resolver(configure=False)
        self.resolver.nameservers = [cfg.server]
        self.resolver.keyring = self.keyring
        self.resolver.keyname = cfg.keyid
        self.resolver.keyalgorithm = cfg.alg

        self.query_resolver = dns.asyncresolver.Resolver(configure=False)
        self.query_resolver.nameservers = cfg.dns_servers or [cfg.server]

    async def _run_query(self, msg):
        await dns.asyncquery.tcp(q=msg, where=self.resolver.nameservers[0])

    async def _update(self, name: str):
        zone = await dns.asyncresolver.zone_for_name(name, resolver=self.resolver)
        name = dns.name.from_text(name).relativize(zone)

        update = dns.update.Update(zone, keyring=self.keyring)
        return name, update

    async def set_txt_record(self, name: str, text: str):
        logger.debug("Setting TXT record %s = %s, TTL %d", name, text, self._ttl)

        name, update = await self._update(name)
        update.add(name, self._ttl, "TXT", text)

        await self._run_query(update)

    async def delete_txt_record(self, name: str, text: str):
        logger.debug("Deleting TXT record %s = %s", name, text)

        name, update = await self._update(name)
        update.delete(name, "TXT", text)

        await self._run_query(update)

    async def query_txt_record(self, name: str) -> typing.List[str]:
        """Queries a DNS TXT record.

        :param name: Name of the TXT record to query.
        :return: List of strings stored in the TXT record.
        """
        txt_records = []

        with contextlib.suppress(dns.asyncresolver.NXDOMAIN, dns.asyncresolver.NoAnswer):
            resp = await self.query_resolver.resolve(name, "TXT")

            for record in resp.rrset:
                txt_records.extend([string.decode() for string in record.strings])

        return txt_records

    async def _query_until_completed(self, name: str, text: str):
        while True:
            records = await self.query_txt_record(name)

            if text in records:
                return

            logger.debug("%s does not have TXT %s yet. Retrying (Records: %s)", name, text, records)
            await asyncio.sleep(self.POLLING_DELAY)

    async def provision_dns(self, name: str, value: str) -> None:
        try:
            await self.set_txt_record(name, value)
        except Exception as e:
            logger.exception("Could not set TXT record: %s = %s", name, value)
            raise CouldNotCompleteChallenge(name) from e

        # Poll the DNS until the correct record is available
        try:
            await asyncio.wait_for(self._query_until_completed(name, value), self._polling_timeout)
        except asyncio.TimeoutError as e:
            raise CouldNotCompleteChallenge(name, "DNS polling timeout") from e

    async def cleanup_dns(self, name: str, value: str) -> None:
        await self.delete_txt_record(name, value)

import asyncio
import logging
import typing
from dataclasses import dataclass

import acme.messages

from acmebot.client.challenge_provisioner import (
    ChallengeProvisioner,
    HttpChallengeProvisioner,
    DnsChallengeProvisioner,
)
from acmebot.client.exceptions import AuthorizationFailed, UnsupportedChallenge
from acmebot.client.session import AcmeSession
from acmebot.models import ChallengeType, STATUS_EXPIRED, challenge_type, challenge_token

logger = logging.getLogger(__name__)

CHALLENGE_PRIORITY = (ChallengeType.HTTP_01, ChallengeType.DNS_01)
"""Challenge types in order of preference. *tls-alpn-01* has no backend."""

WILDCARD_PRIORITY = (ChallengeType.DNS_01,)
"""Wildcard identifiers can only be validated via DNS."""

FAILED_STATUSES = (
    acme.messages.STATUS_INVALID,
    STATUS_EXPIRED,
    acme.messages.STATUS_DEACTIVATED,
    acme.messages.STATUS_REVOKED,
)


@dataclass(frozen=True)
class ProvisioningStrategy:
    """The provisioning backends available for a certificate request."""

    http: typing.Optional[HttpChallengeProvisioner] = None
    dns: typing.Optional[DnsChallengeProvisioner] = None

    def provisioner_for(
        self, challenge_type_: ChallengeType
    ) -> typing.Optional[ChallengeProvisioner]:
        if challenge_type_ is ChallengeType.HTTP_01:
            return self.http
        elif challenge_type_ is ChallengeType.DNS_01:
            return self.dns
        elif challenge_type_ is ChallengeType.TLS_ALPN_01:
            return None

        raise ValueError(f"Unknown challenge type {challenge_type_}")


@dataclass
class ProvisionedChallenge:
    """Record of a published proof, kept for cleanup."""

    challenge_type: ChallengeType
    challenge: acme.messages.ChallengeBody
    token: str
    record_name: str = None
    record_value: str = None


def dns_record_name(challenge: acme.messages.ChallengeBody, identifier: str) -> str:
    """Returns the name of the TXT record that proves control over the given identifier.

    The wildcard label of wildcard identifiers is stripped, the name carries no trailing dot.
    """
    if identifier.startswith("*."):
        identifier = identifier[2:]
    return challenge.chall.validation_domain_name(identifier)


def is_wildcard(authorization: acme.messages.Authorization) -> bool:
    return bool(authorization.wildcard) or authorization.identifier.value.startswith("*.")


class AuthorizationProvisioner:
    """Provisions one challenge per authorization of an order.

    Authorizations that are already *valid* need no provisioning. For *pending* authorizations the
    supported challenge of highest priority is selected and its proof is published through the
    strategy's backend. Everything that was published is removed again by :meth:`cleanup`.
    """

    def __init__(self, session: AcmeSession, strategy: ProvisioningStrategy):
        self._session = session
        self._strategy = strategy
        self._provisioned: typing.List[ProvisionedChallenge] = []

    async def provision(
        self, authorization_urls: typing.Iterable[str]
    ) -> typing.List[acme.messages.ChallengeBody]:
        """Fetches the given authorizations and provisions them in parallel.

        :param authorization_urls: The order's authorization URLs.
        :raises:

            * :class:`~acmebot.client.exceptions.AuthorizationFailed` If an authorization cannot be salvaged.
            * :class:`~acmebot.client.exceptions.UnsupportedChallenge` If an authorization offers no
              challenge there is a backend for.

        :return: The selected challenge of each authorization, in order.
        """
        authorizations = await self._session.get_authorizations(authorization_urls)
        tasks = [asyncio.ensure_future(self.handle(a)) for a in authorizations]
        if not tasks:
            return []

        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            # No proofs may be published once provisioning has failed.
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        for task in tasks:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()

        return [task.result() for task in tasks]

    async def handle(
        self, authorization: acme.messages.Authorization
    ) -> acme.messages.ChallengeBody:
        identifier = authorization.identifier.value
        status = authorization.status

        if status == acme.messages.STATUS_VALID:
            logger.debug("Authorization for %s is already valid", identifier)
            return self._valid_challenge(authorization)
        elif status == acme.messages.STATUS_PENDING:
            challenge, type_ = self.select_challenge(authorization)
            await self._provision(authorization, challenge, type_)
            return challenge
        elif status in FAILED_STATUSES:
            raise AuthorizationFailed(authorization)

        raise ValueError(
            f"Unexpected status {status} of the authorization for {identifier}"
        )

    def select_challenge(
        self, authorization: acme.messages.Authorization
    ) -> typing.Tuple[acme.messages.ChallengeBody, ChallengeType]:
        """Selects the challenge of highest priority that a backend is available for.

        :raises: :class:`~acmebot.client.exceptions.UnsupportedChallenge` If there is none.
        """
        offered = {}
        for challenge in authorization.challenges:
            type_ = challenge_type(challenge)
            if type_ is not None:
                offered.setdefault(type_, challenge)

        priority = WILDCARD_PRIORITY if is_wildcard(authorization) else CHALLENGE_PRIORITY
        for type_ in priority:
            provisioner = self._strategy.provisioner_for(type_)
            if type_ in offered and provisioner is not None and provisioner.supports(type_):
                return offered[type_], type_

        raise UnsupportedChallenge(authorization)

    async def cleanup(self) -> None:
        """Removes everything that was provisioned, logging failures instead of raising them."""
        provisioned, self._provisioned = self._provisioned, []
        await asyncio.gather(*[self._cleanup(p) for p in provisioned])

    async def _provision(
        self,
        authorization: acme.messages.Authorization,
        challenge: acme.messages.ChallengeBody,
        type_: ChallengeType,
    ) -> None:
        identifier = authorization.identifier.value
        token = challenge_token(challenge)
        jwk = await self._session.public_jwk()

        if type_ is ChallengeType.HTTP_01:
            self._provisioned.append(ProvisionedChallenge(type_, challenge, token))
            await self._strategy.http.provision_http(token, challenge.chall.validation(jwk))
        elif type_ is ChallengeType.DNS_01:
            name = dns_record_name(challenge, identifier)
            value = challenge.chall.validation(jwk)
            self._provisioned.append(
                ProvisionedChallenge(type_, challenge, token, name, value)
            )
            await self._strategy.dns.provision_dns(name, value)
        else:
            raise UnsupportedChallenge(authorization)

        logger.info("Provisioned %s challenge for %s", type_.value, identifier)

    async def _cleanup(self, provisioned: ProvisionedChallenge) -> None:
        try:
            if provisioned.challenge_type is ChallengeType.HTTP_01:
                await self._strategy.http.cleanup_http(provisioned.token)
            elif provisioned.challenge_type is ChallengeType.DNS_01:
                await self._strategy.dns.cleanup_dns(
                    provisioned.record_name, provisioned.record_value
                )
        except Exception:
            logger.exception(
                "Could not clean up after %s challenge %s",
                provisioned.challenge_type.value,
                provisioned.challenge.uri,
            )

    @staticmethod
    def _valid_challenge(
        authorization: acme.messages.Authorization,
    ) -> acme.messages.ChallengeBody:
        for challenge in authorization.challenges:
            if challenge.status == acme.messages.STATUS_VALID:
                return challenge

        # Authorizations may be valid through a previous order, without a valid challenge listed.
        return authorization.challenges[0]

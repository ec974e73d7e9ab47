import abc
import logging
import typing

from pydantic_settings import BaseSettings

from acmebot.models import ChallengeType
from acmebot.plugin_base import PluginRegistry

logger = logging.getLogger(__name__)


class ChallengeProvisioner(abc.ABC):
    """An abstract base class for challenge provisioning backends.

    A provisioner publishes the proof the server looks for when validating a challenge.
    Implementations derive from :class:`HttpChallengeProvisioner`, :class:`DnsChallengeProvisioner`
    or both, and must be registered with the plugin registry via
    :meth:`~acmebot.plugin_base.PluginRegistry.register_plugin`, so that the config file
    can refer to them by name.
    """

    SUPPORTED_CHALLENGES: typing.FrozenSet[ChallengeType] = frozenset()
    """The types of challenges that the provisioner implementation supports."""

    class Config(BaseSettings, extra="forbid"):
        type: typing.Literal["none"] = "none"

    def __init__(self, cfg: Config = None):
        pass

    def supports(self, challenge_type: ChallengeType) -> bool:
        return challenge_type in self.SUPPORTED_CHALLENGES

    async def close(self) -> None:
        """Releases the resources held by the provisioner."""
        pass


PluginRegistry.get_registry(ChallengeProvisioner)


class HttpChallengeProvisioner(ChallengeProvisioner):
    """Base class for backends that serve *http-01* key authorizations."""

    SUPPORTED_CHALLENGES = frozenset([ChallengeType.HTTP_01])

    @abc.abstractmethod
    async def provision_http(self, token: str, key_authorization: str) -> None:
        """Makes the key authorization retrievable at */.well-known/acme-challenge/{token}*.

        This method should delay returning until the server is able to fetch the resource.

        :param token: The challenge's token.
        :param key_authorization: The content to serve.
        :raises: :class:`~acmebot.client.exceptions.CouldNotCompleteChallenge`
            If the resource could not be provisioned.
        """
        pass

    async def cleanup_http(self, token: str) -> None:
        """Removes the resource provisioned for the given token.

        This method should not assume that provisioning was successful, meaning it should
        silently return if there is nothing to clean up.

        :param token: The challenge's token.
        """
        pass


class DnsChallengeProvisioner(ChallengeProvisioner):
    """Base class for backends that publish *dns-01* TXT records."""

    SUPPORTED_CHALLENGES = frozenset([ChallengeType.DNS_01])

    @abc.abstractmethod
    async def provision_dns(self, name: str, value: str) -> None:
        """Publishes a TXT record.

        This method should delay returning until the record is visible to the server.

        :param name: The record name, e.g. *_acme-challenge.example.org*.
        :param value: The TXT record value.
        :raises: :class:`~acmebot.client.exceptions.CouldNotCompleteChallenge`
            If the record could not be published.
        """
        pass

    async def cleanup_dns(self, name: str, value: str) -> None:
        """Removes the TXT record published by :meth:`provision_dns`.

        :param name: The record name.
        :param value: The TXT record value.
        """
        pass


@PluginRegistry.register_plugin("dummy")
class DummyProvisioner(HttpChallengeProvisioner, DnsChallengeProvisioner):
    """Dummy provisioner that does not actually publish anything.

    Useful against test servers that skip challenge validation.
    """

    SUPPORTED_CHALLENGES = frozenset([ChallengeType.HTTP_01, ChallengeType.DNS_01])

    class Config(ChallengeProvisioner.Config):
        type: typing.Literal["dummy"] = "dummy"

    async def provision_http(self, token: str, key_authorization: str) -> None:
        logger.debug("(not) provisioning http-01 token %s", token)

    async def cleanup_http(self, token: str) -> None:
        logger.debug("(not) cleaning up http-01 token %s", token)

    async def provision_dns(self, name: str, value: str) -> None:
        logger.debug("(not) provisioning TXT record %s = %s", name, value)

    async def cleanup_dns(self, name: str, value: str) -> None:
        logger.debug("(not) cleaning up TXT record %s", name)

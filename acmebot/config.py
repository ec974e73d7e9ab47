import typing

import yaml
from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings

from acmebot.certbot import CertificateStore
from acmebot.client import (
    AcmeClient,
    ChallengeProvisioner,
    HttpChallengeProvisioner,
    DnsChallengeProvisioner,
)
from acmebot.models import CertificateRequest
from acmebot.plugin_base import PluginRegistry

PluginRegistry.load_plugins(r"plugins")
provisioner_registry = PluginRegistry.get_registry(ChallengeProvisioner)
store_registry = PluginRegistry.get_registry(CertificateStore)


class Config(BaseSettings, extra="forbid"):
    client: AcmeClient.Config
    """The ACME server and the account to use."""
    http_provisioner: typing.Optional[ChallengeProvisioner.Config] = None
    """Backend for *http-01* challenges, selected by its *type*."""
    dns_provisioner: typing.Optional[ChallengeProvisioner.Config] = None
    """Backend for *dns-01* challenges, selected by its *type*."""
    store: CertificateStore.Config
    """Where keys and certificates are kept, selected by its *type*."""
    renewal_interval: int = 60
    """Certificates are renewed if they expire within this many days."""
    max_execution_time: float = 600.0
    """Deadline in seconds for obtaining a single certificate."""
    requests: typing.List[CertificateRequest] = Field(default_factory=list)
    """The certificates to obtain."""
    logging: typing.Any = None
    """Mapping passed to :func:`logging.config.dictConfig`."""

    @field_validator("http_provisioner", "dns_provisioner", mode="before")
    @classmethod
    def _provisioner_config(cls, value, info: ValidationInfo):
        if not isinstance(value, dict):
            return value

        plugin = provisioner_registry.get_plugin(value.get("type"))
        required = (
            HttpChallengeProvisioner
            if info.field_name == "http_provisioner"
            else DnsChallengeProvisioner
        )
        if not issubclass(plugin, required):
            raise ValueError(
                f"The provisioner {value['type']} cannot be used as {info.field_name}"
            )

        return plugin.Config.model_validate(value)

    @field_validator("store", mode="before")
    @classmethod
    def _store_config(cls, value):
        if not isinstance(value, dict):
            return value

        return store_registry.get_plugin(value.get("type")).Config.model_validate(value)


def load_config(config_file: str) -> Config:
    with open(config_file) as stream:
        config = yaml.safe_load(stream)

    return Config.model_validate(config)

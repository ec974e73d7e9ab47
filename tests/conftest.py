import logging
import typing

import pytest
import pytest_asyncio

from acmebot.client import (
    AcmeClient,
    DnsChallengeProvisioner,
    HttpChallengeProvisioner,
    LocalSigningKey,
    ProvisioningStrategy,
)
from acmebot.models import ChallengeType, CertificateRequest
from acmebot.util import generate_private_key

from .acme_ca import AcmeTestCA

log = logging.getLogger(__name__)


class MemoryProvisioner(HttpChallengeProvisioner, DnsChallengeProvisioner):
    """Keeps provisioned key authorizations and TXT records in memory."""

    SUPPORTED_CHALLENGES = frozenset([ChallengeType.HTTP_01, ChallengeType.DNS_01])

    def __init__(self):
        super().__init__()
        self.http: typing.Dict[str, str] = dict()
        self.dns: typing.Dict[str, str] = dict()
        self.cleaned: typing.List[str] = []

    async def provision_http(self, token: str, key_authorization: str) -> None:
        self.http[token] = key_authorization

    async def cleanup_http(self, token: str) -> None:
        self.http.pop(token, None)
        self.cleaned.append(token)

    async def provision_dns(self, name: str, value: str) -> None:
        self.dns[name] = value

    async def cleanup_dns(self, name: str, value: str) -> None:
        self.dns.pop(name, None)
        self.cleaned.append(name)


@pytest_asyncio.fixture
async def ca(unused_tcp_port_factory):
    s = AcmeTestCA(unused_tcp_port_factory())
    await s.run()
    log.info("test CA at %s", s.base)
    yield s
    await s.stop()


@pytest.fixture(scope="session")
def account_key():
    return LocalSigningKey(generate_private_key("ec", 256))


@pytest.fixture
def rsa_account_key():
    return LocalSigningKey(generate_private_key("rsa", 2048))


@pytest_asyncio.fixture
async def client(ca):
    c = AcmeClient(directory_url=ca.directory_url, retries=2)
    yield c
    await c.close()


@pytest.fixture
def session(client, account_key):
    return client.login(account_key, {"email": "admin@example.org"})


@pytest.fixture
def provisioner():
    return MemoryProvisioner()


@pytest.fixture
def strategy(provisioner):
    return ProvisioningStrategy(http=provisioner, dns=provisioner)


@pytest.fixture
def certificate_request():
    return CertificateRequest(
        subject_dn="CN=example.org",
        dns_names=["example.org", "www.example.org"],
        certificate_name="example-org",
        key_type="ec",
        key_size=256,
    )


@pytest.fixture
def validating_ca(ca, provisioner):
    """The test CA, accepting an http-01 challenge only if the expected key authorization was provisioned."""

    def validate(challenge, key_authorization):
        if challenge["type"] == "http-01":
            return provisioner.http.get(challenge["token"]) == key_authorization
        return True

    ca.validator = validate
    return ca

import datetime

import pydantic
import pytest
import yaml

from acmebot.certbot import FileCertificateStore
from acmebot.client import DummyProvisioner
from acmebot.config import Config, load_config
from acmebot.context import Context
from acmebot.models import KeyType
from acmebot.plugins.rfc2136_provisioner import RFC2136Provisioner
from acmebot.plugins.webroot_provisioner import WebrootProvisioner
from acmebot.util import generate_ec_key


@pytest.fixture
def config_data(tmp_path):
    generate_ec_key(tmp_path / "account.key")

    return {
        "client": {
            "directory": "https://acme.example.org/directory",
            "private_key": str(tmp_path / "account.key"),
            "contact": {"email": "admin@example.org"},
            "poll_interval": 0.01,
        },
        "http_provisioner": {"type": "webroot", "path": str(tmp_path / "webroot")},
        "dns_provisioner": {
            "type": "rfc2136",
            "server": "127.0.0.1",
            "keyid": "acme.",
            "alg": "hmac-sha256",
            "secret": "c2VjcmV0",
        },
        "store": {"type": "file", "path": str(tmp_path / "certificates")},
        "renewal_interval": 30,
        "requests": [
            {
                "subject_dn": "CN=example.org",
                "dns_names": ["Example.org", "*.example.org"],
                "certificate_name": "example-org",
                "key_type": "ec",
                "key_size": 384,
            }
        ],
    }


@pytest.fixture
def config_file(tmp_path, config_data):
    path = tmp_path / "config.yml"
    path.write_text(yaml.safe_dump(config_data))
    return path


def test_load_config(config_file, tmp_path):
    config = load_config(str(config_file))

    assert config.client.directory == "https://acme.example.org/directory"
    assert config.client.retries == 5
    assert isinstance(config.http_provisioner, WebrootProvisioner.Config)
    assert isinstance(config.dns_provisioner, RFC2136Provisioner.Config)
    assert config.dns_provisioner.ttl == 60
    assert isinstance(config.store, FileCertificateStore.Config)

    (request,) = config.requests
    assert request.dns_names == ("example.org", "*.example.org")
    assert request.key_type is KeyType.EC
    assert request.identifiers()[1] == {"type": "dns", "value": "*.example.org"}


def test_provisioner_in_wrong_slot(config_data):
    config_data["dns_provisioner"] = config_data["http_provisioner"]

    with pytest.raises(pydantic.ValidationError) as excinfo:
        Config.model_validate(config_data)

    assert "cannot be used as dns_provisioner" in str(excinfo.value)


@pytest.mark.parametrize(
    "section, value",
    [
        ("store", {"type": "unknown"}),
        ("http_provisioner", {"type": "webroot"}),
        ("http_provisioner", {"type": "dummy", "extra": 1}),
        ("requests", [{"subject_dn": "CN=x", "dns_names": [], "certificate_name": "x"}]),
        ("requests", [{"subject_dn": "not a dn", "dns_names": ["x"], "certificate_name": "x"}]),
        ("unknown", 1),
    ],
)
def test_invalid_config(config_data, section, value):
    config_data[section] = value

    with pytest.raises(pydantic.ValidationError):
        Config.model_validate(config_data)


def test_optional_sections(config_data):
    del config_data["http_provisioner"], config_data["dns_provisioner"], config_data["requests"]

    config = Config.model_validate(config_data)

    assert config.http_provisioner is None and config.dns_provisioner is None
    assert config.requests == []


@pytest.mark.asyncio
async def test_context_from_config(config_file):
    context = Context.from_config(load_config(str(config_file)))
    try:
        assert isinstance(context.http_provisioner, WebrootProvisioner)
        assert isinstance(context.dns_provisioner, RFC2136Provisioner)
        assert isinstance(context.store, FileCertificateStore)
        assert context.renewal_interval == datetime.timedelta(days=30)
        assert context.session() is context.session()

        (request,) = await context.storage.pending()
        strategy = context.strategy(request)
        assert strategy.http is context.http_provisioner
        assert strategy.dns is context.dns_provisioner
    finally:
        await context.close()


@pytest.mark.asyncio
async def test_context_runner(ca, config_data, tmp_path):
    config_data["client"]["directory"] = ca.directory_url
    config_data["http_provisioner"] = {"type": "dummy"}
    config_data["dns_provisioner"] = {"type": "dummy"}
    config = Config.model_validate(config_data)

    context = Context.from_config(config)
    try:
        assert isinstance(context.http_provisioner, DummyProvisioner)
        assert await context.runner().run() == []
        assert await context.store.certificate_names() == ["example-org"]
        assert (tmp_path / "certificates" / "example-org" / "fullchain.pem").is_file()
    finally:
        await context.close()

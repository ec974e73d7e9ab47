import asyncio

import pytest
from cryptography import x509

from acmebot.certbot import CertBot, FileCertificateStore, OrderFailed, OrderProcess, ProcessState
from acmebot.util import pem_split

POLL_INTERVAL = 0.01


@pytest.fixture
def store(tmp_path):
    return FileCertificateStore(FileCertificateStore.Config(path=str(tmp_path)))


@pytest.fixture
def certbot(session, store, strategy):
    return CertBot(session, store, lambda request: strategy, poll_interval=POLL_INTERVAL)


def order_polls(ca):
    return [path for path, _ in ca.signed_requests if path.startswith("/order/") and not path.endswith("/finalize")]


@pytest.mark.asyncio
async def test_certificate_is_issued(validating_ca, certbot, store, tmp_path, provisioner, certificate_request):
    chain = await certbot.submit(certificate_request)

    leaf, root = pem_split(chain)
    assert leaf.issuer == validating_ca.root_cert.subject
    san = leaf.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    assert set(san.get_values_for_type(x509.DNSName)) == {"example.org", "www.example.org"}

    assert (tmp_path / "example-org" / "fullchain.pem").read_text() == chain
    assert await store.certificate_names() == ["example-org"]

    assert provisioner.http == {}
    assert len(provisioner.cleaned) == 2
    assert not certbot.is_processing(certificate_request)


@pytest.mark.asyncio
async def test_valid_authorizations_are_reused(validating_ca, certbot, provisioner, certificate_request):
    await certbot.submit(certificate_request)
    cleaned = list(provisioner.cleaned)

    chain = await certbot.submit(certificate_request)

    assert chain.startswith("-----BEGIN CERTIFICATE-----")
    assert provisioner.cleaned == cleaned
    assert len(validating_ca.certificates) == 2


@pytest.mark.asyncio
async def test_submit_deduplicates(ca, certbot, certificate_request):
    first = certbot.submit(certificate_request)
    second = certbot.submit(certificate_request)

    assert first is second
    assert certbot.is_processing(certificate_request)

    await first
    await asyncio.sleep(0)

    assert not certbot.is_processing(certificate_request)
    third = certbot.submit(certificate_request)
    assert third is not first
    await third
    assert len(ca.orders) == 2


@pytest.mark.asyncio
async def test_invalid_order(ca, certbot, provisioner, certificate_request):
    ca.validator = lambda challenge, key_authorization: False

    with pytest.raises(OrderFailed) as excinfo:
        await certbot.submit(certificate_request)

    assert excinfo.value.error.code == "unauthorized"
    assert excinfo.value.order_url in ca.orders
    assert provisioner.http == {}
    assert len(provisioner.cleaned) == 2


@pytest.mark.asyncio
async def test_processing_is_polled(validating_ca, certbot, certificate_request):
    validating_ca.processing_polls = 3

    chain = await certbot.submit(certificate_request)

    assert chain.startswith("-----BEGIN CERTIFICATE-----")
    # one poll while pending, then one per processing round and the one returning valid
    assert len(order_polls(validating_ca)) == 1 + 3 + 1


@pytest.mark.asyncio
async def test_bad_nonce_during_process(validating_ca, certbot, session, certificate_request):
    await session.account()
    validating_ca.reject_nonces = 2

    chain = await certbot.submit(certificate_request)

    assert chain.startswith("-----BEGIN CERTIFICATE-----")


@pytest.mark.asyncio
async def test_timeout_cancels_process(ca, certbot, provisioner, certificate_request):
    release = asyncio.Event()

    async def validate(challenge, key_authorization):
        await release.wait()
        return True

    ca.validator = validate

    try:
        with pytest.raises(asyncio.TimeoutError):
            await certbot.submit(certificate_request, timeout=0.5)
    finally:
        release.set()

    assert not certbot.is_processing(certificate_request)
    assert provisioner.http == {}
    assert len(provisioner.cleaned) == 2


@pytest.mark.asyncio
async def test_check_keeps_process_running(ca, certbot, certificate_request):
    release = asyncio.Event()

    async def validate(challenge, key_authorization):
        await release.wait()
        return True

    ca.validator = validate
    task = certbot.submit(certificate_request)

    with pytest.raises(asyncio.TimeoutError):
        await certbot.check(certificate_request, timeout=0.2)

    assert certbot.is_processing(certificate_request)
    release.set()

    chain = await certbot.check(certificate_request)
    assert chain == await task


@pytest.mark.asyncio
async def test_check_unknown_request(certbot, certificate_request):
    with pytest.raises(KeyError):
        await certbot.check(certificate_request)


@pytest.mark.asyncio
async def test_process_states(validating_ca, session, store, strategy, certificate_request):
    process = OrderProcess(certificate_request, session, strategy, store, POLL_INTERVAL)
    assert process.state is ProcessState.CREATED

    chain = await process.run()

    assert process.state is ProcessState.VALID
    assert process.certificate.result() == chain
    assert process.order_url in validating_ca.orders


@pytest.mark.asyncio
async def test_process_failure_resolves_future(ca, session, store, strategy, certificate_request):
    ca.validator = lambda challenge, key_authorization: False
    process = OrderProcess(certificate_request, session, strategy, store, POLL_INTERVAL)

    with pytest.raises(OrderFailed):
        await process.run()

    assert process.state is ProcessState.INVALID
    assert isinstance(process.certificate.exception(), OrderFailed)

import asyncio

import acme.messages
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import serialization

from acmebot.client import AcmeClient, AcmeServerError, RetriesExhausted, thumbprint
from acmebot.models import ChallengeType, challenge_token, challenge_type
from acmebot.util import generate_csr, generate_private_key, pem_split


def csr_der(*names: str) -> bytes:
    csr = generate_csr(
        x509.Name.from_rfc4514_string(f"CN={names[0]}"),
        generate_private_key("ec", 256),
        list(names),
    )
    return csr.public_bytes(serialization.Encoding.DER)


@pytest.mark.asyncio
async def test_account_is_resolved_once(ca, session):
    accounts = await asyncio.gather(*[session.account() for _ in range(5)])

    assert len({account.kid for account in accounts}) == 1
    assert accounts[0].status == acme.messages.STATUS_VALID
    assert accounts[0].contact == ("mailto:admin@example.org",)
    assert len(ca.accounts) == 1
    assert [path for path, _ in ca.signed_requests] == ["/new-account"]


@pytest.mark.asyncio
async def test_new_account_uses_jwk_then_kid(ca, session):
    await session.create_order(["example.org"])

    (account_path, account_header), (order_path, order_header) = ca.signed_requests
    assert account_path == "/new-account"
    assert "jwk" in account_header and "kid" not in account_header
    assert order_path == "/new-order"
    assert order_header["kid"] == await session.account_url()
    assert "jwk" not in order_header


@pytest.mark.asyncio
async def test_existing_account_is_found(ca, client, account_key, session):
    url = await session.account_url()

    other = client.login(account_key, only_return_existing=True)
    assert await other.account_url() == url
    assert len(ca.accounts) == 1


@pytest.mark.asyncio
async def test_only_return_existing_without_account(client, rsa_account_key):
    session = client.login(rsa_account_key, only_return_existing=True)

    with pytest.raises(AcmeServerError) as excinfo:
        await session.account()

    assert excinfo.value.code == "accountDoesNotExist"


@pytest.mark.asyncio
async def test_order_to_certificate(ca, session, account_key):
    created = await session.create_order(["example.org"])
    order = created.resource
    assert created.url.startswith(ca.base + "/order/")
    assert order.status == acme.messages.STATUS_PENDING
    assert len(order.authorizations) == 1

    (authorization,) = await session.get_authorizations(order.authorizations)
    assert authorization.status == acme.messages.STATUS_PENDING
    assert authorization.identifier.value == "example.org"

    http = [c for c in authorization.challenges if challenge_type(c) is ChallengeType.HTTP_01]
    assert len(http) == 1
    (challenge,) = http
    assert challenge.status == acme.messages.STATUS_PENDING

    token = challenge_token(challenge)
    key_authorization = await session.key_authorization(challenge)
    assert key_authorization == f"{token}.{thumbprint(await account_key.public_jwk())}"

    submitted = await session.submit_challenge(challenge.uri)
    assert submitted.status == acme.messages.STATUS_VALID
    (fetched,) = await session.get_challenges([challenge.uri])
    assert fetched.status == acme.messages.STATUS_VALID

    order = await session.get_order(created.url)
    assert order.status == acme.messages.STATUS_READY

    order = await session.finalize_order(order.finalize, csr_der("example.org"))
    assert order.status == acme.messages.STATUS_VALID
    assert order.certificate

    pem = await session.download_certificate(order.certificate)
    assert pem.startswith("-----BEGIN CERTIFICATE-----")
    leaf, root = pem_split(pem)
    assert leaf.issuer == root.subject


@pytest.mark.asyncio
async def test_finalize_before_ready(session):
    created = await session.create_order(["example.org"])

    with pytest.raises(AcmeServerError) as excinfo:
        await session.finalize_order(created.resource.finalize, csr_der("example.org"))

    assert excinfo.value.code == "orderNotReady"
    assert not excinfo.value.retryable


@pytest.mark.asyncio
async def test_bad_nonce_is_retried(ca, session):
    await session.account()
    ca.reject_nonces = 2

    created = await session.create_order(["example.org"])

    assert created.resource.status == acme.messages.STATUS_PENDING
    assert [path for path, _ in ca.signed_requests].count("/new-order") == 3


@pytest.mark.asyncio
async def test_bad_nonce_budget_exhausted(ca, session):
    await session.account()
    ca.reject_nonces = 10

    with pytest.raises(RetriesExhausted) as excinfo:
        await session.create_order(["example.org"])

    assert excinfo.value.attempts == 3
    assert excinfo.value.last_error.code == "badNonce"
    assert [path for path, _ in ca.signed_requests].count("/new-order") == 3


@pytest.mark.asyncio
async def test_nonces_are_reused_from_responses(ca, session):
    await session.account()
    await session.create_order(["example.org"])
    await session.create_order(["example.com"])

    # only the very first request needs a nonce from newNonce
    assert ca.nonce_requests == 1


@pytest.mark.asyncio
async def test_thumbprint_is_memoized(session, account_key):
    expected = thumbprint(await account_key.public_jwk())

    assert await asyncio.gather(session.public_key_thumbprint(), session.public_key_thumbprint()) == [
        expected,
        expected,
    ]


@pytest.mark.asyncio
async def test_revoke_certificate(ca, session):
    created = await session.create_order(["example.org"])
    (authorization,) = await session.get_authorizations(created.resource.authorizations)
    await session.submit_challenges([c.uri for c in authorization.challenges[:1]])
    order = await session.finalize_order(created.resource.finalize, csr_der("example.org"))
    leaf, _ = pem_split(await session.download_certificate(order.certificate))

    await session.revoke_certificate(leaf, reason=4)

    assert ca.revoked == [leaf.serial_number]


@pytest.mark.asyncio
async def test_deactivate_account(ca, session):
    await session.account()

    account = await session.deactivate_account()

    assert account.status == acme.messages.STATUS_DEACTIVATED
    with pytest.raises(AcmeServerError) as excinfo:
        await session.create_order(["example.org"])
    assert excinfo.value.code == "unauthorized"


@pytest.mark.asyncio
async def test_client_context_manager(ca):
    async with AcmeClient(directory_url=ca.directory_url) as client:
        directory = await client.directory()
        assert directory["newOrder"] == f"{ca.base}/new-order"
        assert await client.directory() is directory


@pytest.mark.asyncio
async def test_public_jwk_is_memoized(session, account_key):
    jwk = await session.public_jwk()

    assert jwk == await account_key.public_jwk()
    assert await session.public_jwk() is jwk
    assert await session.public_key_thumbprint() == thumbprint(jwk)

import asyncio

import pytest

from acmebot.client.exceptions import AcmeClientException
from acmebot.client.nonce import NonceSource


class FakeFetch:
    def __init__(self, *nonces):
        self.nonces = list(nonces)
        self.calls = 0
        self.running = 0
        self.max_running = 0

    async def __call__(self):
        self.calls += 1
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        await asyncio.sleep(0.01)
        self.running -= 1
        return self.nonces.pop(0)


@pytest.mark.asyncio
async def test_fetches_if_empty():
    fetch = FakeFetch("nonce1")
    nonces = NonceSource(fetch)

    assert await nonces.get_nonce() == "nonce1"
    assert fetch.calls == 1


@pytest.mark.asyncio
async def test_latest_nonce_wins_and_is_consumed():
    fetch = FakeFetch("nonce1")
    nonces = NonceSource(fetch)

    nonces.update("nonce2")
    nonces.update("nonce3")
    assert await nonces.get_nonce() == "nonce3"
    assert fetch.calls == 0

    # the nonce has been handed out, the next caller needs a fresh one
    assert await nonces.get_nonce() == "nonce1"

    nonces.update("nonce4")
    assert await nonces.get_nonce() == "nonce4"


@pytest.mark.asyncio
async def test_empty_update_is_ignored():
    nonces = NonceSource(FakeFetch())
    nonces.update("nonce1")
    nonces.update("")
    nonces.update(None)

    assert await nonces.get_nonce() == "nonce1"


@pytest.mark.asyncio
async def test_concurrent_callers_do_not_race_the_fetch():
    fetch = FakeFetch("nonce1", "nonce2", "nonce3")
    nonces = NonceSource(fetch)

    results = await asyncio.gather(*[nonces.get_nonce() for _ in range(3)])

    assert sorted(results) == ["nonce1", "nonce2", "nonce3"]
    assert fetch.max_running == 1


@pytest.mark.asyncio
async def test_waiting_caller_uses_nonce_observed_meanwhile():
    fetch = FakeFetch("nonce1", "nonce2")
    nonces = NonceSource(fetch)

    first = asyncio.ensure_future(nonces.get_nonce())
    second = asyncio.ensure_future(nonces.get_nonce())
    await asyncio.sleep(0)
    # a response arrives while the first caller is fetching
    nonces.update("from-response")

    assert await first == "nonce1"
    assert await second == "from-response"
    assert fetch.calls == 1


@pytest.mark.asyncio
async def test_never_returns_empty_nonce():
    nonces = NonceSource(FakeFetch(""))

    with pytest.raises(AcmeClientException):
        await nonces.get_nonce()

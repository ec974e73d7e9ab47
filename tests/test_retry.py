import acme.messages
import aiohttp
import pytest

from acmebot.client.exceptions import AcmeServerError, RetriesExhausted
from acmebot.client.retry import RetryPolicy, with_retry


def server_error(code: str) -> AcmeServerError:
    return AcmeServerError("https://ca/new-order", 400, error=acme.messages.Error.with_code(code))


class Operation:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def test_classification():
    assert server_error("badNonce").retryable
    assert not server_error("malformed").retryable
    assert not server_error("unauthorized").retryable
    assert not AcmeServerError("https://ca/new-order", 500, body="oops").retryable

    policy = RetryPolicy(retries=2)
    assert policy.should_retry(server_error("badNonce"), 1)
    assert not policy.should_retry(server_error("badNonce"), 2)
    assert not policy.should_retry(server_error("malformed"), 0)


@pytest.mark.asyncio
async def test_budget_exhausted():
    error = server_error("badNonce")
    operation = Operation(error)

    with pytest.raises(RetriesExhausted) as excinfo:
        await with_retry(operation, RetryPolicy(retries=2))

    # the first attempt plus two retries
    assert operation.calls == 3
    assert excinfo.value.attempts == 3
    assert excinfo.value.last_error is error
    assert excinfo.value.__cause__ is error


@pytest.mark.asyncio
async def test_non_retryable_error_is_not_retried():
    error = server_error("malformed")
    operation = Operation(error)

    with pytest.raises(AcmeServerError) as excinfo:
        await with_retry(operation, RetryPolicy(retries=2))

    assert operation.calls == 1
    assert excinfo.value is error


@pytest.mark.asyncio
async def test_transport_errors_propagate():
    operation = Operation(aiohttp.ClientConnectionError("refused"))

    with pytest.raises(aiohttp.ClientConnectionError):
        await with_retry(operation, RetryPolicy(retries=2))

    assert operation.calls == 1


@pytest.mark.asyncio
async def test_recovers_after_bad_nonce():
    operation = Operation(server_error("badNonce"), "order")

    assert await with_retry(operation, RetryPolicy()) == "order"
    assert operation.calls == 2

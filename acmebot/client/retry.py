import logging
import typing
from dataclasses import dataclass

from acmebot.client.exceptions import AcmeServerError, RetriesExhausted

logger = logging.getLogger(__name__)

T = typing.TypeVar("T")

NONCE_RETRIES = 5


@dataclass(frozen=True)
class RetryPolicy:
    """Decides which failed requests are repeated and how often."""

    retries: int = NONCE_RETRIES
    """The number of times a logical operation is retried before giving up."""

    def is_retryable(self, error: BaseException) -> bool:
        return isinstance(error, AcmeServerError) and error.retryable

    def should_retry(self, error: BaseException, retries_so_far: int) -> bool:
        """Returns True if the operation should be attempted again after the given error.

        :param error: The error of the last attempt.
        :param retries_so_far: The number of retries already spent on the operation.
        """
        return self.is_retryable(error) and retries_so_far < self.retries


async def with_retry(
    operation: typing.Callable[[], typing.Awaitable[T]],
    policy: RetryPolicy,
    description: str = "request",
) -> T:
    """Runs the given operation, repeating it as long as the policy allows.

    The operation is expected to pick up a fresh nonce on every invocation, the server
    sends one along with each error response.

    :param operation: Coroutine function performing one attempt.
    :param policy: The retry policy.
    :param description: What the operation does, for logging.
    :raises: :class:`~acmebot.client.exceptions.RetriesExhausted` If a retryable error persisted
        beyond the policy's budget. Non-retryable errors are raised unchanged.
    :return: The result of the first successful attempt.
    """
    retries = 0
    while True:
        try:
            return await operation()
        except AcmeServerError as e:
            if not policy.should_retry(e, retries):
                if policy.is_retryable(e):
                    raise RetriesExhausted(retries + 1, e) from e
                raise

            retries += 1
            logger.warning(
                "Retrying %s after %s (retry %d of %d)",
                description,
                e.code,
                retries,
                policy.retries,
            )

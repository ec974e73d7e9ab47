import typing

import acme.messages


class AcmeClientException(Exception):
    """General ACME client exception."""

    pass


class AcmeServerError(AcmeClientException):
    """Exception that is raised if the ACME server answered with an HTTP status code of 400 or above.

    If the response carried an *application/problem+json* body, it is available as :attr:`error`.
    Otherwise the raw body is kept in :attr:`body`.
    """

    RETRYABLE_CODES = frozenset(["badNonce"])

    def __init__(
        self,
        url: str,
        status: int,
        error: typing.Optional[acme.messages.Error] = None,
        body: str = None,
    ):
        super().__init__(url, status, error, body)
        self.url = url
        """The URL of the failed request."""
        self.status = status
        """The HTTP status code of the response."""
        self.error = error
        """The problem document sent by the server, if any."""
        self.body = body

    @property
    def code(self) -> typing.Optional[str]:
        """The ACME error code, e.g. *badNonce*, without the URN prefix."""
        return self.error.code if self.error is not None else None

    @property
    def typ(self) -> typing.Optional[str]:
        """The full error type as sent by the server."""
        return self.error.typ if self.error is not None else None

    @property
    def retryable(self) -> bool:
        return self.code in self.RETRYABLE_CODES

    def __str__(self):
        detail = str(self.error) if self.error is not None else self.body
        return f"{self.url} returned {self.status}: {detail}"


class RetriesExhausted(AcmeClientException):
    """Exception that is raised once the retry budget of an operation is used up."""

    def __init__(self, attempts: int, last_error: Exception):
        super().__init__(attempts, last_error)
        self.attempts = attempts
        self.last_error = last_error

    def __str__(self):
        return f"{self.attempts} attempts failed, last error: {self.last_error}"


class SigningError(AcmeClientException):
    """Exception that is raised if the signing key backend could not produce a signature."""

    pass


class UnsupportedChallenge(AcmeClientException):
    """Exception that is raised if none of an authorization's challenges can be provisioned."""

    def __init__(self, authorization: acme.messages.Authorization, *args):
        super().__init__(*args)
        self.authorization = authorization

    def __str__(self):
        offered = ", ".join(c.chall.typ for c in self.authorization.challenges)
        return f"No provisioner for any of the offered challenges: {offered}"


class AuthorizationFailed(AcmeClientException):
    """Exception that is raised for an authorization in a status that cannot be salvaged."""

    def __init__(self, authorization: acme.messages.Authorization, *args):
        super().__init__(*args)
        self.authorization = authorization

    def __str__(self):
        identifier = self.authorization.identifier
        return (
            f"Authorization for {identifier.value if identifier else '?'} "
            f"is {self.authorization.status.name}"
        )


class CouldNotCompleteChallenge(AcmeClientException):
    """Exception that is raised if provisioning a specific challenge failed."""

    def __init__(self, challenge: str, *args):
        super().__init__(*args)
        self.challenge = challenge
        """The token or record name of the challenge whose provisioning was unsuccessful."""

    def __str__(self):
        return f"Could not complete challenge: {self.challenge}"

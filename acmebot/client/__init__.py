from .authorization import AuthorizationProvisioner, ProvisioningStrategy
from .challenge_provisioner import (
    ChallengeProvisioner,
    HttpChallengeProvisioner,
    DnsChallengeProvisioner,
    DummyProvisioner,
)
from .client import AcmeClient
from .exceptions import (
    AcmeClientException,
    AcmeServerError,
    RetriesExhausted,
    SigningError,
    UnsupportedChallenge,
    AuthorizationFailed,
    CouldNotCompleteChallenge,
)
from .keys import SigningKey, LocalSigningKey, thumbprint
from .retry import RetryPolicy, with_retry
from .session import AcmeSession

__all__ = [
    "AuthorizationProvisioner",
    "ProvisioningStrategy",
    "ChallengeProvisioner",
    "HttpChallengeProvisioner",
    "DnsChallengeProvisioner",
    "DummyProvisioner",
    "AcmeClient",
    "AcmeSession",
    "AcmeClientException",
    "AcmeServerError",
    "RetriesExhausted",
    "SigningError",
    "UnsupportedChallenge",
    "AuthorizationFailed",
    "CouldNotCompleteChallenge",
    "SigningKey",
    "LocalSigningKey",
    "thumbprint",
    "RetryPolicy",
    "with_retry",
]

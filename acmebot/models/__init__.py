from .certificate_request import CertificateRequest, KeyType
from .challenge import ChallengeType, challenge_type, challenge_token
from .messages import (
    STATUS_EXPIRED,
    Account,
    AccountDeactivation,
    CreatedResource,
    NewOrder,
    OrderFinalization,
    Revocation,
)

__all__ = [
    "CertificateRequest",
    "KeyType",
    "ChallengeType",
    "challenge_type",
    "challenge_token",
    "STATUS_EXPIRED",
    "Account",
    "AccountDeactivation",
    "CreatedResource",
    "NewOrder",
    "OrderFinalization",
    "Revocation",
]

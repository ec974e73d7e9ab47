import enum
import typing

from cryptography import x509
from pydantic import BaseModel, ConfigDict, field_validator


class KeyType(str, enum.Enum):
    RSA = "rsa"
    EC = "ec"


class CertificateRequest(BaseModel):
    """A request for a certificate as it is queued by the operator.

    Instances are immutable and hashable. Two requests with equal content are the same
    request, which is what :class:`~acmebot.certbot.CertBot` uses to deduplicate submissions.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    subject_dn: str
    """Subject name for the certificate in RFC 4514 notation, e.g. *CN=example.org*."""
    dns_names: typing.Tuple[str, ...]
    """The DNS names to be supported by the certificate."""
    certificate_name: str
    """Unique name given to the certificate in the certificate store."""
    key_type: KeyType = KeyType.RSA
    key_size: int = 2048
    validity_in_months: int = 3

    @field_validator("dns_names")
    @classmethod
    def _names_not_empty(cls, value):
        if not value:
            raise ValueError("at least one DNS name is required")
        return tuple(name.lower() for name in value)

    @field_validator("subject_dn")
    @classmethod
    def _subject_parses(cls, value):
        x509.Name.from_rfc4514_string(value)
        return value

    @property
    def subject(self) -> x509.Name:
        return x509.Name.from_rfc4514_string(self.subject_dn)

    def identifiers(self) -> typing.List[typing.Dict[str, str]]:
        """The ACME identifiers of the requested names, in request order."""
        return [dict(type="dns", value=name) for name in self.dns_names]

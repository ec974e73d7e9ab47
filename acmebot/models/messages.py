import datetime
import typing

import acme.fields
import acme.messages
import josepy

from acmebot.util import base64url

STATUS_EXPIRED = acme.messages.Status("expired")
"""Authorizations may expire, which :mod:`acme.messages` does not know about."""


class CreatedResource(typing.NamedTuple):
    """A resource returned by a *new-* endpoint together with its canonical URL.

    The URL is taken from the *Location* header of the response.
    """

    resource: typing.Any
    url: str


class NewOrder(josepy.JSONObjectWithFields):
    """Message type for new order requests."""

    identifiers: typing.List[typing.Dict[str, str]] = josepy.Field(
        "identifiers", omitempty=True
    )
    """The requested identifiers."""
    not_before: "datetime.datetime" = acme.fields.rfc3339("notBefore", omitempty=True)
    """The requested *notBefore* field in the certificate."""
    not_after: "datetime.datetime" = acme.fields.rfc3339("notAfter", omitempty=True)
    """The requested *notAfter* field in the certificate."""

    @classmethod
    def from_data(
        cls,
        identifiers: typing.Union[
            typing.List[typing.Dict[str, str]], typing.List[str]
        ] = None,
        not_before: "datetime.datetime" = None,
        not_after: "datetime.datetime" = None,
    ) -> "NewOrder":
        """Class factory that takes care of parsing the list of *identifiers*.

        :param identifiers: Either a :class:`list` of :class:`dict` where each dict consists of the keys *type* \
            and *value*, or a :class:`list` of :class:`str` that represent the DNS names.
        :param not_before: The requested *notBefore* field in the certificate.
        :param not_after: The requested *notAfter* field in the certificate.
        :return: The new order object.
        """
        kwargs = {}

        if not identifiers:
            raise ValueError("An order needs at least one identifier")
        elif type(identifiers[0]) is dict:
            kwargs["identifiers"] = identifiers
        elif type(identifiers[0]) is str:
            kwargs["identifiers"] = [
                dict(type="dns", value=identifier) for identifier in identifiers
            ]
        else:
            raise ValueError(
                "Could not decode identifiers list. Must be either List(str) or List(dict) where "
                "the dict has two keys 'type' and 'value'"
            )

        kwargs["not_before"] = not_before
        kwargs["not_after"] = not_after

        return cls(**kwargs)


class Account(josepy.JSONObjectWithFields):
    """The client side representation of an ACME account.

    The :attr:`kid` field holds the account URL, which is sent to the server in the protected
    header of every request after the account has been resolved.
    """

    status: acme.messages.Status = josepy.Field(
        "status", omitempty=True, decoder=acme.messages.Status.from_json
    )
    """The account's status."""
    contact: typing.Tuple[str] = josepy.Field("contact", omitempty=True)
    """The account's contact info."""
    orders: str = josepy.Field("orders", omitempty=True)
    """URL of the account's orders list."""
    kid: str = josepy.Field("kid")
    """The account's key ID, i.e. its URL."""


class AccountDeactivation(josepy.JSONObjectWithFields):
    """Message type that deactivates an account.

    `7.3.6. Account Deactivation <https://tools.ietf.org/html/rfc8555#section-7.3.6>`_
    """

    status: str = josepy.Field("status")

    @classmethod
    def create(cls) -> "AccountDeactivation":
        return cls(status=acme.messages.STATUS_DEACTIVATED.name)


class OrderFinalization(josepy.JSONObjectWithFields):
    """Message type for order finalization requests.

    The CSR is handed in as DER by the certificate store and sent base64url encoded.
    """

    csr: str = josepy.Field("csr")

    @classmethod
    def from_der(cls, der: bytes) -> "OrderFinalization":
        return cls(csr=base64url(der))


class Revocation(josepy.JSONObjectWithFields):
    """Message type for certificate revocation requests."""

    certificate: str = josepy.Field("certificate")
    """The DER encoded certificate, base64url encoded."""
    reason: int = josepy.Field("reason", omitempty=True)
    """The RFC 5280 reason code."""

    @classmethod
    def from_der(cls, der: bytes, reason: int = None) -> "Revocation":
        return cls(certificate=base64url(der), reason=reason)

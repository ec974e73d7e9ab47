import enum
import typing

import acme.messages


class ChallengeType(str, enum.Enum):
    """The challenge variants the client knows about.

    Subclassing :class:`str` simplifies json serialization using :func:`json.dumps`.
    """

    HTTP_01 = "http-01"
    """The ACME *http-01* challenge type.
    See `8.3. HTTP Challenge <https://tools.ietf.org/html/rfc8555#section-8.3>`_"""
    DNS_01 = "dns-01"
    """The ACME *dns-01* challenge type.
    See `8.4. DNS Challenge <https://tools.ietf.org/html/rfc8555#section-8.4>`_"""
    TLS_ALPN_01 = "tls-alpn-01"
    """The ACME *tls-alpn-01* challenge type.
    See `RFC 8737 <https://tools.ietf.org/html/rfc8737>`_"""


def challenge_type(
    challenge: acme.messages.ChallengeBody,
) -> typing.Optional[ChallengeType]:
    """Returns the type tag of the given challenge, or *None* for unknown variants."""
    try:
        return ChallengeType(challenge.chall.typ)
    except ValueError:
        return None


def challenge_token(challenge: acme.messages.ChallengeBody) -> str:
    """Returns the challenge's token in its base64url wire form."""
    return challenge.chall.encode("token")

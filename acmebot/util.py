import typing
from pathlib import Path

import josepy
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa, ec

KEY_FILE_MODE = 0o600

PrivateKey = typing.Union[rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey]


def base64url(data: typing.Union[bytes, str]) -> str:
    """Encodes the given data as unpadded base64url, as mandated by RFC 7515.

    :param data: The data to encode. Strings are encoded as UTF-8 first.
    :return: The base64url encoded data.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    return josepy.b64.b64encode(data).decode("ascii")


def generate_private_key(key_type: str = "rsa", key_size: int = 2048) -> PrivateKey:
    """Generates an in-memory private key.

    :param key_type: Either *rsa* or *ec*.
    :param key_size: The RSA modulus size or the EC curve size (256, 384 or 521).
    :raises: :class:`ValueError` If the key type is unknown.
    :return: The generated private key.
    """
    if key_type == "rsa":
        return rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    elif key_type == "ec":
        curve = getattr(ec, f"SECP{key_size}R1")
        return ec.generate_private_key(curve())

    raise ValueError(f"Unsupported key type {key_type}")


def write_private_key(path: Path, private_key: PrivateKey) -> None:
    """Saves the given private key to the given path as PEM, readable by the owner only."""
    pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )

    path.touch(KEY_FILE_MODE) if not path.exists() else path.chmod(KEY_FILE_MODE)

    with open(path, "wb") as pem_out:
        pem_out.write(pem)


def generate_rsa_key(path: Path, key_size=2048) -> rsa.RSAPrivateKey:
    """Generates an RSA private key and saves it to the given path as PEM.

    :param path: The path to write the PEM-serialized key to.
    :param key_size: The RSA key size.
    :return: The generated private key.
    """
    private_key = generate_private_key("rsa", key_size)
    write_private_key(path, private_key)
    return private_key


def generate_ec_key(path: Path, key_size=256) -> ec.EllipticCurvePrivateKey:
    """Generates an EC private key and saves it to the given path as PEM.

    :param path: The path to write the PEM-serialized key to.
    :param key_size: The EC key size.
    :return: The generated private key.
    """
    private_key = generate_private_key("ec", key_size)
    write_private_key(path, private_key)
    return private_key


def generate_csr(
    subject: x509.Name, private_key: PrivateKey, names: typing.List[str]
) -> x509.CertificateSigningRequest:
    """Generates a certificate signing request.

    :param subject: The requested subject name.
    :param private_key: The private key to sign the CSR with.
    :param names: The requested DNS names in the subject alternative name extension.
    :return: The generated CSR.
    """
    return (
        x509.CertificateSigningRequestBuilder()
        .subject_name(subject)
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName(name) for name in names]),
            critical=False,
        )
        .sign(private_key, hashes.SHA256())
    )


def names_of(csr: x509.CertificateSigningRequest) -> typing.Set[str]:
    """Returns the DNS names in the subject alternative name extension of the given CSR.

    :param csr: The CSR whose names to extract.
    :return: Set of the contained names, in lowercase.
    """
    try:
        san = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return set()

    return set(name.lower() for name in san.value.get_values_for_type(x509.DNSName))


def pem_split(pem: str) -> typing.List[x509.Certificate]:
    """Parses a PEM encoded certificate chain.

    :param pem: The concatenated PEM encoded certificates.
    :raises: :class:`ValueError` If the string contains no certificate.
    :return: The certificates in order of appearance.
    """
    return x509.load_pem_x509_certificates(pem.encode())

import abc
import asyncio
import datetime
import logging
import typing
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from pydantic_settings import BaseSettings

from acmebot.models import CertificateRequest, KeyType
from acmebot.plugin_base import PluginRegistry
from acmebot.util import generate_private_key, write_private_key, generate_csr, names_of, pem_split

logger = logging.getLogger(__name__)

PUBLIC_KEY_TYPES = {
    KeyType.RSA: rsa.RSAPublicKey,
    KeyType.EC: ec.EllipticCurvePublicKey,
}


class CertificateStore(abc.ABC):
    """An abstract base class for the places issued certificates are kept.

    The store owns the certificate private keys, which is why it also creates the CSRs.
    """

    class Config(BaseSettings, extra="forbid"):
        type: typing.Literal["none"] = "none"

    def __init__(self, cfg: Config = None):
        pass

    @abc.abstractmethod
    async def create_csr(self, request: CertificateRequest) -> bytes:
        """Returns a CSR for the given request.

        Repeated calls return the same CSR until a certificate is uploaded for the request.

        :param request: The certificate request.
        :return: The DER encoded CSR.
        """
        pass

    @abc.abstractmethod
    async def upload(self, certificate_name: str, pem_chain: str) -> None:
        """Stores an issued certificate.

        :param certificate_name: The request's certificate name.
        :param pem_chain: The PEM encoded chain, end-entity certificate first.
        """
        pass

    async def certificate_names(self) -> typing.List[str]:
        """Returns the names of all stored certificates."""
        return []

    async def certificate_expiry(
        self, certificate_name: str
    ) -> typing.Optional[datetime.datetime]:
        """Returns the end of the validity period of a stored certificate, or *None*."""
        return None

    async def expiring_certificates(
        self, within: datetime.timedelta
    ) -> typing.List[str]:
        """Returns the names of the stored certificates that expire within the given time.

        :param within: The renewal interval.
        """
        deadline = datetime.datetime.now(datetime.timezone.utc) + within
        expiring = []
        for name in await self.certificate_names():
            expiry = await self.certificate_expiry(name)
            if expiry is not None and expiry <= deadline:
                expiring.append(name)
        return expiring


PluginRegistry.get_registry(CertificateStore)


@PluginRegistry.register_plugin("file")
class FileCertificateStore(CertificateStore):
    """Keeps keys and certificates in one directory per certificate name.

    ::

        <path>/<certificate name>/privkey.pem
        <path>/<certificate name>/request.csr     (until the certificate is uploaded)
        <path>/<certificate name>/fullchain.pem
    """

    KEY_FILE = "privkey.pem"
    CSR_FILE = "request.csr"
    CHAIN_FILE = "fullchain.pem"

    class Config(CertificateStore.Config):
        type: typing.Literal["file"] = "file"
        path: str
        """The directory the certificates are kept in."""

    def __init__(self, cfg: Config):
        super().__init__(cfg)
        self._path = Path(cfg.path)

    def _directory(self, certificate_name: str) -> Path:
        if not certificate_name or "/" in certificate_name or certificate_name.startswith("."):
            raise ValueError(f"Invalid certificate name {certificate_name!r}")
        return self._path / certificate_name

    @staticmethod
    def _csr_matches(csr: x509.CertificateSigningRequest, request: CertificateRequest) -> bool:
        public_key = csr.public_key()
        return (
            names_of(csr) == set(request.dns_names)
            and csr.subject == request.subject
            and isinstance(public_key, PUBLIC_KEY_TYPES[request.key_type])
            and public_key.key_size == request.key_size
        )

    async def create_csr(self, request: CertificateRequest) -> bytes:
        return await asyncio.get_running_loop().run_in_executor(None, self._create_csr, request)

    def _create_csr(self, request: CertificateRequest) -> bytes:
        directory = self._directory(request.certificate_name)
        csr_path = directory / self.CSR_FILE

        if csr_path.exists():
            csr = x509.load_pem_x509_csr(csr_path.read_bytes())
            if self._csr_matches(csr, request):
                logger.debug("Reusing pending CSR for %s", request.certificate_name)
                return csr.public_bytes(serialization.Encoding.DER)

            logger.info(
                "Pending CSR for %s does not match the request anymore", request.certificate_name
            )

        directory.mkdir(parents=True, exist_ok=True)
        private_key = generate_private_key(request.key_type.value, request.key_size)
        # The pending key only replaces the current one once the new certificate is uploaded.
        write_private_key(directory / f"{self.KEY_FILE}.new", private_key)

        csr = generate_csr(request.subject, private_key, list(request.dns_names))
        csr_path.write_bytes(csr.public_bytes(serialization.Encoding.PEM))
        logger.info("Created CSR for %s", request.certificate_name)

        return csr.public_bytes(serialization.Encoding.DER)

    async def upload(self, certificate_name: str, pem_chain: str) -> None:
        await asyncio.get_running_loop().run_in_executor(None, self._upload, certificate_name, pem_chain)

    def _upload(self, certificate_name: str, pem_chain: str) -> None:
        directory = self._directory(certificate_name)
        try:
            pem_split(pem_chain)
        except ValueError as e:
            raise ValueError(f"No certificate in the chain for {certificate_name}") from e

        directory.mkdir(parents=True, exist_ok=True)

        (directory / self.CHAIN_FILE).write_text(pem_chain)

        pending_key = directory / f"{self.KEY_FILE}.new"
        if pending_key.exists():
            pending_key.replace(directory / self.KEY_FILE)
        (directory / self.CSR_FILE).unlink(missing_ok=True)

        logger.info("Stored certificate %s in %s", certificate_name, directory)

    async def certificate_names(self) -> typing.List[str]:
        if not self._path.is_dir():
            return []
        return sorted(
            child.name
            for child in self._path.iterdir()
            if (child / self.CHAIN_FILE).is_file()
        )

    async def certificate_expiry(
        self, certificate_name: str
    ) -> typing.Optional[datetime.datetime]:
        chain_path = self._directory(certificate_name) / self.CHAIN_FILE
        if not chain_path.is_file():
            return None

        certificate = x509.load_pem_x509_certificate(chain_path.read_bytes())
        return certificate.not_valid_after_utc

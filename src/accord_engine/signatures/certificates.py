"""Trusted public keys for cryptographic signatures."""

import hashlib
import logging

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import PublicKeyTypes

from accord_engine.common.config import AccordSettings

logger = logging.getLogger(__name__)

FINGERPRINT_PREFIX = "sha256:"


def load_public_key(pem: str | bytes) -> PublicKeyTypes:
    """Load a PEM public key or the subject key of a PEM X.509 certificate.

    Raises ValueError when the text is neither.
    """
    data = pem.encode() if isinstance(pem, str) else pem
    if b"BEGIN CERTIFICATE" in data:
        return x509.load_pem_x509_certificate(data).public_key()
    return serialization.load_pem_public_key(data)


def fingerprint(key: PublicKeyTypes) -> str:
    """``sha256:<hex>`` over the DER SubjectPublicKeyInfo."""
    der = key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return FINGERPRINT_PREFIX + hashlib.sha256(der).hexdigest()


class CertificateRegistry:
    """Resolves certificate references to public keys.

    A reference is either a registered name or the ``sha256:`` fingerprint
    of a registered key.
    """

    def __init__(self, keys: dict[str, str] | None = None):
        self._by_name: dict[str, PublicKeyTypes] = {}
        self._by_fingerprint: dict[str, PublicKeyTypes] = {}
        for name, pem in (keys or {}).items():
            self.register(name, pem)

    @classmethod
    def from_settings(cls, settings: AccordSettings) -> "CertificateRegistry":
        return cls(settings.trusted_key_map)

    def register(self, name: str, pem: str | bytes) -> str:
        """Trust a key under ``name``; returns its fingerprint."""
        key = load_public_key(pem)
        fp = fingerprint(key)
        self._by_name[name] = key
        self._by_fingerprint[fp] = key
        logger.info("Trusted signing key registered: %s (%s)", name, fp)
        return fp

    def resolve(self, ref: str) -> PublicKeyTypes | None:
        if ref.startswith(FINGERPRINT_PREFIX):
            return self._by_fingerprint.get(ref.lower())
        return self._by_name.get(ref)

    def __contains__(self, ref: str) -> bool:
        return self.resolve(ref) is not None

    def __len__(self) -> int:
        return len(self._by_name)

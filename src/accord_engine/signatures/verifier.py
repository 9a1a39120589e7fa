"""
Signature verification, dispatched on the declared signature kind.

Verification never raises: every outcome, including an unknown kind or
a malformed payload, is a VerificationResult. Signing proceeds either
way and records the result on the Signature.
"""

import base64
import binascii
import json
import logging
import re
from enum import Enum
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from accord_engine.common.config import AccordSettings, get_settings
from accord_engine.signatures.certificates import CertificateRegistry

logger = logging.getLogger(__name__)

DATA_URI_PATTERN = re.compile(
    r"^data:image/[A-Za-z0-9.+-]+;base64,(?P<payload>.*)$", re.DOTALL
)
CRYPTO_PAYLOAD_FIELDS = ("message", "signature", "certificate")


class SignatureType(str, Enum):
    FREEHAND = "freehand"
    TYPED = "typed"
    UPLOADED = "uploaded"
    CRYPTOGRAPHIC = "cryptographic"


# Every kind must map to a check; a new kind fails at import until handled
_DISPATCH: dict[SignatureType, str] = {
    SignatureType.FREEHAND: "_check_image",
    SignatureType.TYPED: "_check_typed",
    SignatureType.UPLOADED: "_check_image",
    SignatureType.CRYPTOGRAPHIC: "_check_cryptographic",
}

_unhandled = set(SignatureType) - set(_DISPATCH)
if _unhandled:
    raise RuntimeError(
        f"No verifier registered for signature types: {sorted(t.value for t in _unhandled)}"
    )


class VerificationResult:
    """Outcome of verifying one signature payload."""

    __slots__ = ("valid", "code", "message", "method")

    def __init__(self, valid: bool, code: str = "", message: str = "", method: str = ""):
        self.valid = valid
        self.code = code
        self.message = message
        self.method = method

    def __bool__(self) -> bool:
        return self.valid

    def __repr__(self) -> str:
        return f"VerificationResult(valid={self.valid}, code={self.code!r})"


class SignatureVerifier:
    """Stateless per-kind checks over signature payloads."""

    def __init__(
        self,
        settings: AccordSettings | None = None,
        registry: CertificateRegistry | None = None,
    ):
        settings = settings or get_settings()
        self.min_image_bytes = settings.image_signature_min_bytes
        self.max_image_bytes = settings.image_signature_max_bytes
        self.min_typed_length = settings.typed_signature_min_length
        self.registry = registry if registry is not None else CertificateRegistry.from_settings(settings)

    def verify(self, signature: Any) -> bool:
        return self.check(signature).valid

    def check(self, signature: Any) -> VerificationResult:
        """Verify anything carrying ``type`` and ``data`` attributes."""
        declared = getattr(signature, "type", None)
        try:
            kind = SignatureType(declared)
        except ValueError:
            return VerificationResult(
                False, "UNKNOWN_TYPE", f"Unknown signature type {declared!r}",
            )

        data = getattr(signature, "data", None)
        if not isinstance(data, str):
            return VerificationResult(
                False, "MALFORMED_PAYLOAD", "Signature data must be a string",
            )
        return getattr(self, _DISPATCH[kind])(data)

    # ── Per-kind checks ──

    def _check_image(self, data: str) -> VerificationResult:
        match = DATA_URI_PATTERN.match(data.strip())
        if not match:
            return VerificationResult(
                False, "INVALID_DATA_URI", "Expected a data:image/...;base64, URI",
            )
        try:
            raw = base64.b64decode(match.group("payload"), validate=True)
        except (binascii.Error, ValueError):
            return VerificationResult(False, "INVALID_ENCODING", "Image payload is not valid base64")

        size = len(raw)
        if size <= self.min_image_bytes:
            return VerificationResult(
                False, "IMAGE_TOO_SMALL",
                f"Image is {size} bytes; must exceed {self.min_image_bytes}",
            )
        if size >= self.max_image_bytes:
            return VerificationResult(
                False, "IMAGE_TOO_LARGE",
                f"Image is {size} bytes; must be under {self.max_image_bytes}",
            )
        return VerificationResult(True, "VERIFIED", f"Image signature ({size} bytes)", method="image")

    def _check_typed(self, data: str) -> VerificationResult:
        length = len(data.strip())
        if length < self.min_typed_length:
            return VerificationResult(
                False, "TEXT_TOO_SHORT",
                f"Typed signature has {length} characters; needs at least {self.min_typed_length}",
            )
        return VerificationResult(True, "VERIFIED", "Typed signature", method="typed")

    def _check_cryptographic(self, data: str) -> VerificationResult:
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            return VerificationResult(False, "MALFORMED_PAYLOAD", "Payload is not JSON")
        if not isinstance(payload, dict) or not all(
            isinstance(payload.get(f), str) and payload.get(f) for f in CRYPTO_PAYLOAD_FIELDS
        ):
            return VerificationResult(
                False, "MALFORMED_PAYLOAD",
                f"Payload must carry string fields: {', '.join(CRYPTO_PAYLOAD_FIELDS)}",
            )

        try:
            blob = base64.b64decode(payload["signature"], validate=True)
        except (binascii.Error, ValueError):
            return VerificationResult(False, "INVALID_ENCODING", "Signature blob is not valid base64")

        ref = payload["certificate"]
        key = self.registry.resolve(ref)
        if key is None:
            return VerificationResult(False, "UNKNOWN_CERTIFICATE", f"No trusted key for {ref!r}")

        message = payload["message"].encode()
        try:
            if isinstance(key, Ed25519PublicKey):
                method = "ed25519"
                key.verify(blob, message)
            elif isinstance(key, ec.EllipticCurvePublicKey):
                method = "ecdsa-sha256"
                key.verify(blob, message, ec.ECDSA(hashes.SHA256()))
            elif isinstance(key, rsa.RSAPublicKey):
                method = "rsa-pkcs1v15-sha256"
                key.verify(blob, message, padding.PKCS1v15(), hashes.SHA256())
            else:
                return VerificationResult(
                    False, "UNSUPPORTED_KEY", f"Key type {type(key).__name__} is not supported",
                )
        except InvalidSignature:
            logger.warning("Cryptographic signature failed verification against %s", ref)
            return VerificationResult(False, "BAD_SIGNATURE", f"Signature does not match key {ref!r}")

        return VerificationResult(True, "VERIFIED", f"Verified against {ref}", method=method)

"""Accord-Engine: Multi-party contract lifecycle, signing and audit engine."""

from accord_engine.contracts.status import TRANSITIONS, ContractStatus, can_transition, check_transition
from accord_engine.signatures.verifier import SignatureType, SignatureVerifier, VerificationResult

__all__ = [
    "TRANSITIONS",
    "ContractStatus",
    "can_transition",
    "check_transition",
    "SignatureType",
    "SignatureVerifier",
    "VerificationResult",
]
__version__ = "0.1.0"

"""Tests for signing: party checks, re-signing policy, completion and verification outcomes."""

import base64
import json

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from pydantic import ValidationError as PydanticValidationError

from accord_engine.audit.schemas import AuditAction
from accord_engine.common.exceptions import SignatureError, ValidationError
from accord_engine.contracts.status import ContractStatus
from accord_engine.notifications.sender import NotificationType

from tests.conftest import (
    CLIENT_EMAIL,
    CONTRACTOR_EMAIL,
    PARTIES,
    WITNESS_EMAIL,
    contract_params,
    typed,
)


async def sent_contract(engine, **overrides):
    contract = await engine.create(contract_params(**overrides))
    return await engine.send(contract.id)


def request(contract_id, email, signature=None, **extra):
    body = {"contract_id": contract_id, "signer_email": email, "signature": signature or typed()}
    body.update(extra)
    return body


class TestPartialAndComplete:
    async def test_first_signature_partially_signs(self, engine):
        contract = await sent_contract(engine)
        signed = await engine.sign(request(contract.id, CLIENT_EMAIL, typed("Jane Smith")))

        assert signed.status == ContractStatus.PARTIALLY_SIGNED
        assert len(signed.signatures) == 1
        assert signed.find_party(CLIENT_EMAIL).signed_at is not None
        assert signed.find_party(CONTRACTOR_EMAIL).signed_at is None
        assert signed.completed_at is None

    async def test_last_required_signature_completes(self, engine, notifier, received):
        contract = await sent_contract(engine)
        await engine.sign(request(contract.id, CLIENT_EMAIL))
        signed = await engine.sign(request(contract.id, CONTRACTOR_EMAIL))

        assert signed.status == ContractStatus.SIGNED
        assert signed.completed_at is not None
        assert [e.name for e in received[-2:]] == ["contract:signed", "contract:completed"]
        assert received[-1].payload["status"] == "signed"

        completed = [
            c.args[0] for c in notifier.notify.await_args_list
            if c.args[0].type == NotificationType.CONTRACT_COMPLETED
        ]
        assert {n.recipient_email for n in completed} == {CLIENT_EMAIL, CONTRACTOR_EMAIL}

    async def test_signing_from_viewed(self, engine):
        contract = await sent_contract(engine)
        await engine.record_view(contract.id, CLIENT_EMAIL)
        signed = await engine.sign(request(contract.id, CLIENT_EMAIL))
        assert signed.status == ContractStatus.PARTIALLY_SIGNED

    async def test_witness_signature_does_not_complete(self, engine):
        witness = {"name": "Witness", "email": WITNESS_EMAIL, "role": "witness"}
        contract = await sent_contract(engine, parties=PARTIES + [witness])
        await engine.sign(request(contract.id, WITNESS_EMAIL))
        signed = await engine.sign(request(contract.id, CLIENT_EMAIL))
        assert signed.status == ContractStatus.PARTIALLY_SIGNED

        signed = await engine.sign(request(contract.id, CONTRACTOR_EMAIL))
        assert signed.status == ContractStatus.SIGNED

    async def test_completion_stamped_once(self, engine, store):
        contract = await sent_contract(engine)
        await engine.sign(request(contract.id, CLIENT_EMAIL))
        signed = await engine.sign(request(contract.id, CONTRACTOR_EMAIL))
        first_completion = signed.completed_at

        await engine.update(contract.id, {"status": "active"})
        current = await store.load(contract.id)
        assert current.completed_at == first_completion

    async def test_signer_email_case_insensitive(self, engine):
        contract = await sent_contract(engine)
        signed = await engine.sign(request(contract.id, CLIENT_EMAIL.upper()))
        assert signed.signatures[0].party_id == signed.find_party(CLIENT_EMAIL).id


class TestRefusals:
    async def test_stranger_refused_without_trace(self, engine):
        contract = await sent_contract(engine)
        trail_before = len(await engine.get_audit_trail(contract.id))

        with pytest.raises(SignatureError) as exc:
            await engine.sign(request(contract.id, "stranger@else.example"))
        assert "not a party" in exc.value.message

        current = await engine.get(contract.id)
        assert current.signatures == []
        assert current.version == contract.version
        assert len(await engine.get_audit_trail(contract.id)) == trail_before

    async def test_draft_cannot_be_signed(self, engine):
        contract = await engine.create(contract_params())
        with pytest.raises(SignatureError) as exc:
            await engine.sign(request(contract.id, CLIENT_EMAIL))
        assert "draft" in exc.value.message

    async def test_signed_contract_cannot_be_signed_again(self, engine):
        contract = await sent_contract(engine)
        await engine.sign(request(contract.id, CLIENT_EMAIL))
        await engine.sign(request(contract.id, CONTRACTOR_EMAIL))
        with pytest.raises(SignatureError):
            await engine.sign(request(contract.id, CLIENT_EMAIL))

    async def test_cancelled_contract_cannot_be_signed(self, engine):
        contract = await sent_contract(engine)
        await engine.update(contract.id, {"status": "cancelled"})
        with pytest.raises(SignatureError):
            await engine.sign(request(contract.id, CLIENT_EMAIL))


class TestResignPolicy:
    async def test_append_keeps_every_signature(self, make_engine):
        engine = make_engine(resign_policy="append")
        contract = await sent_contract(engine)
        await engine.sign(request(contract.id, CLIENT_EMAIL, typed("First Try")))
        signed = await engine.sign(request(contract.id, CLIENT_EMAIL, typed("Second Try")))

        client = signed.find_party(CLIENT_EMAIL)
        assert [s.data for s in signed.signatures_for(client.id)] == ["First Try", "Second Try"]
        assert signed.status == ContractStatus.PARTIALLY_SIGNED
        assert (await engine.get_audit_trail(contract.id))[-1].action == AuditAction.SIGNED

    async def test_reject_refuses_second_signature(self, make_engine):
        engine = make_engine(resign_policy="reject")
        contract = await sent_contract(engine)
        first = await engine.sign(request(contract.id, CLIENT_EMAIL))

        with pytest.raises(SignatureError) as exc:
            await engine.sign(request(contract.id, CLIENT_EMAIL))
        assert "already signed" in exc.value.message

        current = await engine.get(contract.id)
        assert len(current.signatures) == 1
        assert current.version == first.version


class TestVerificationOutcome:
    async def test_verified_typed_signature(self, engine):
        contract = await sent_contract(engine)
        signed = await engine.sign(request(contract.id, CLIENT_EMAIL))
        signature = signed.signatures[0]
        assert signature.verified is True
        assert signature.verification_method == "typed"

    async def test_unverified_signature_still_recorded(self, engine, received):
        contract = await sent_contract(engine)
        signed = await engine.sign(request(contract.id, CLIENT_EMAIL, typed("ab")))
        assert signed.status == ContractStatus.PARTIALLY_SIGNED
        assert signed.signatures[0].verified is False
        assert signed.signatures[0].verification_method is None
        assert received[-1].payload["verified"] is False

        trail = await engine.get_audit_trail(contract.id)
        assert trail[-1].details["signature"]["code"] == "TEXT_TOO_SHORT"

    async def test_unknown_type_never_aborts_signing(self, engine):
        contract = await sent_contract(engine)
        signed = await engine.sign(request(
            contract.id, CLIENT_EMAIL, {"type": "biometric", "data": "retina-scan"},
        ))
        assert len(signed.signatures) == 1
        assert signed.signatures[0].verified is False

    async def test_image_signature(self, engine):
        contract = await sent_contract(engine)
        image = "data:image/png;base64," + base64.b64encode(b"\x89PNG" * 100).decode()
        signed = await engine.sign(request(contract.id, CLIENT_EMAIL, {"type": "freehand", "data": image}))
        assert signed.signatures[0].verified is True
        assert signed.signatures[0].verification_method == "image"

    async def test_cryptographic_signature(self, make_engine):
        key = Ed25519PrivateKey.generate()
        pem = key.public_key().public_bytes(
            serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode()
        engine = make_engine(trusted_keys=json.dumps({"brand-legal": pem}))
        contract = await sent_contract(engine)

        message = f"{contract.id}:v{contract.version}"
        payload = json.dumps({
            "message": message,
            "signature": base64.b64encode(key.sign(message.encode())).decode(),
            "certificate": "brand-legal",
        })
        signed = await engine.sign(request(
            contract.id, CLIENT_EMAIL, {"type": "cryptographic", "data": payload},
        ))
        assert signed.signatures[0].verified is True
        assert signed.signatures[0].verification_method == "ed25519"


class TestSignatureContext:
    async def test_location_and_client_recorded(self, engine):
        contract = await sent_contract(engine)
        signed = await engine.sign(request(
            contract.id, CLIENT_EMAIL,
            location={"latitude": 37.5, "longitude": 127.0},
            ip_address="203.0.113.9",
            user_agent="Mozilla/5.0",
        ))
        signature = signed.signatures[0]
        assert signature.location.latitude == 37.5
        assert signature.ip_address == "203.0.113.9"

        entry = (await engine.get_audit_trail(contract.id))[-1]
        assert entry.performed_by == CLIENT_EMAIL
        assert entry.ip_address == "203.0.113.9"
        assert entry.user_agent == "Mozilla/5.0"
        assert entry.details["location"]["longitude"] == 127.0

    async def test_signatures_are_immutable(self, engine):
        contract = await sent_contract(engine)
        signed = await engine.sign(request(contract.id, CLIENT_EMAIL))
        with pytest.raises(PydanticValidationError):
            signed.signatures[0].data = "forged"

    async def test_out_of_range_location_rejected(self, engine):
        contract = await sent_contract(engine)
        with pytest.raises(ValidationError) as exc:
            await engine.sign(request(contract.id, CLIENT_EMAIL, location={"latitude": 91, "longitude": 0}))
        assert exc.value.fields == ["location.latitude"]
        assert (await engine.get(contract.id)).signatures == []

    async def test_missing_signature_is_a_validation_error(self, engine):
        contract = await sent_contract(engine)
        with pytest.raises(ValidationError) as exc:
            await engine.sign({"contract_id": contract.id, "signer_email": CLIENT_EMAIL})
        assert exc.value.code == "VALIDATION_ERROR"
        assert exc.value.fields == ["signature"]
        assert "SignRequest" in exc.value.message
        assert len(await engine.get_audit_trail(contract.id)) == 2

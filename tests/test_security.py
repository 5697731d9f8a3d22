import hashlib
import json

import pytest

from cloudtickets.schemas import TicketCredential
from cloudtickets.security import (
    CredentialSigner,
    checkout_integrity_signature,
    checksums_match,
    webhook_checksum,
)

TICKET_ID = "3f6c2a1e-8d4b-4c3a-9a55-0e2f1b7c9d10"


def flip_bit(hex_signature, bit):
    raw = bytearray(bytes.fromhex(hex_signature))
    raw[bit // 8] ^= 1 << (bit % 8)
    return raw.hex()


@pytest.mark.parametrize("event_id,expiry", [(7, None), (7, 1893456000), ("42", None), (1, 0)])
def test_sign_then_verify(signer, event_id, expiry):
    signature = signer.sign(TICKET_ID, event_id, expiry)
    assert len(signature) == 64
    assert signer.verify(TICKET_ID, event_id, expiry, signature)


def test_signing_is_deterministic(signer):
    assert signer.sign(TICKET_ID, 7) == signer.sign(TICKET_ID, 7, None)


def test_every_single_bit_flip_is_rejected(signer):
    signature = signer.sign(TICKET_ID, 7)
    for bit in range(256):
        assert not signer.verify(TICKET_ID, 7, None, flip_bit(signature, bit))


def test_other_secret_does_not_verify(signer):
    other = CredentialSigner("another-secret")
    assert not signer.verify(TICKET_ID, 7, None, other.sign(TICKET_ID, 7))


def test_expiry_is_part_of_the_signed_message(signer):
    signature = signer.sign(TICKET_ID, 7, 1893456000)
    assert not signer.verify(TICKET_ID, 7, None, signature)
    assert not signer.verify(TICKET_ID, 7, 1893456001, signature)


@pytest.mark.parametrize("bad", [None, "", "zz", "abc", "00" * 31, "00" * 33, 12345, b"\x00" * 32])
def test_malformed_signatures_return_false(signer, bad):
    assert signer.verify(TICKET_ID, 7, None, bad) is False


def test_signer_needs_a_secret():
    with pytest.raises(ValueError):
        CredentialSigner("")


def test_canonical_message_layout():
    assert CredentialSigner.canonical_message("abc", 7) == "abc|7|"
    assert CredentialSigner.canonical_message("abc", 7, 1700000000) == "abc|7|1700000000"


def test_holder_fields_are_not_covered_by_the_signature(signer):
    credential = TicketCredential(
        ticket_id=TICKET_ID,
        event_id=7,
        holder_name="Ana Ruiz",
        holder_email="ana@example.com",
        signature=signer.sign(TICKET_ID, 7, None),
    )
    decoded = TicketCredential.model_validate(json.loads(credential.to_wire()))
    assert decoded.holder_name == "Ana Ruiz"
    assert signer.verify(decoded.ticket_id, decoded.event_id, decoded.expiry, decoded.signature)

    # Renamed holder, signature untouched: still verifies
    tampered = json.loads(credential.to_wire())
    tampered["hn"] = "Someone Else"
    tampered = TicketCredential.model_validate(tampered)
    assert signer.verify(tampered.ticket_id, tampered.event_id, tampered.expiry, tampered.signature)

    # Different ticket id with the old signature: rejected
    forged = json.loads(credential.to_wire())
    forged["tid"] = "00000000-0000-4000-8000-000000000000"
    forged = TicketCredential.model_validate(forged)
    assert not signer.verify(forged.ticket_id, forged.event_id, forged.expiry, forged.signature)


def test_credential_wire_format_uses_compact_keys(signer):
    credential = TicketCredential(ticket_id=TICKET_ID, event_id=7, signature=signer.sign(TICKET_ID, 7))
    wire = json.loads(credential.to_wire())
    assert set(wire) == {"t", "tid", "eid", "exp", "hn", "he", "hp", "sig"}
    assert wire["t"] == "TICKET"
    assert wire["exp"] is None


def test_checkout_integrity_signature():
    expected = hashlib.sha256(b"CT-1-0001-abc30000COPsecret").hexdigest()
    assert checkout_integrity_signature("CT-1-0001-abc", 30000, "COP", "secret") == expected


class TestWebhookChecksum:
    data = {"transaction": {"id": "1234-1610641025-49201", "status": "APPROVED", "amount_in_cents": 4490000}}
    properties = ["transaction.id", "transaction.status", "transaction.amount_in_cents"]

    def test_matches_provider_recipe(self):
        raw = "1234-1610641025-49201APPROVED44900001530291411prod_events_secret"
        expected = hashlib.sha256(raw.encode()).hexdigest()
        assert webhook_checksum(self.data, self.properties, 1530291411, "prod_events_secret") == expected

    def test_property_order_matters(self):
        forward = webhook_checksum(self.data, self.properties, 1530291411, "s")
        backward = webhook_checksum(self.data, list(reversed(self.properties)), 1530291411, "s")
        assert forward != backward

    def test_missing_property_hashes_as_empty(self):
        raw = "APPROVED1530291411s"
        expected = hashlib.sha256(raw.encode()).hexdigest()
        assert webhook_checksum(self.data, ["transaction.nope", "transaction.status"], 1530291411, "s") == expected

    @pytest.mark.parametrize("properties,timestamp,secret", [
        ([], 1530291411, "s"),
        (None, 1530291411, "s"),
        (["transaction.id"], None, "s"),
        (["transaction.id"], "", "s"),
        (["transaction.id"], True, "s"),
        (["transaction.id"], 1530291411, ""),
    ])
    def test_fails_closed(self, properties, timestamp, secret):
        assert webhook_checksum(self.data, properties, timestamp, secret) is None

    def test_checksum_comparison_ignores_hex_case(self):
        digest = webhook_checksum(self.data, self.properties, 1530291411, "s")
        assert checksums_match(digest, digest.upper())
        assert not checksums_match(digest, digest[:-1] + ("0" if digest[-1] != "0" else "1"))
        assert not checksums_match(digest, None)

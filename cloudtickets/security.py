import hmac
import hashlib
import uuid
from typing import Any, Iterable, Optional, Union

from fastapi import Depends

from cloudtickets.config import Settings, get_settings

# Separator for the canonical credential message; never appears in UUIDs or integer ids
CREDENTIAL_SEPARATOR = "|"


def generate_credential_id() -> str:
    return str(uuid.uuid4())


class CredentialSigner:
    """
    HMAC-SHA256 over ``ticket_id|event_id|expiry``.

    Only the ticket identity tuple is covered; holder fields carried next to
    the signature in a credential are informational. Expiry is signed but
    never enforced here, the check-in flow compares it against the clock.
    """

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("CredentialSigner requires a non-empty secret")
        self._key = secret.encode("utf-8")

    @staticmethod
    def canonical_message(ticket_id: str, event_id: Union[int, str], expiry: Optional[int] = None) -> str:
        return CREDENTIAL_SEPARATOR.join([str(ticket_id), str(event_id), str(expiry) if expiry else ""])

    def sign(self, ticket_id: str, event_id: Union[int, str], expiry: Optional[int] = None) -> str:
        message = self.canonical_message(ticket_id, event_id, expiry)
        return hmac.new(self._key, message.encode("utf-8"), hashlib.sha256).hexdigest()

    def verify(self, ticket_id: str, event_id: Union[int, str], expiry: Optional[int], signature: Any) -> bool:
        if not signature or not isinstance(signature, str):
            return False
        try:
            supplied = bytes.fromhex(signature)
        except ValueError:
            return False

        expected = bytes.fromhex(self.sign(ticket_id, event_id, expiry))
        if len(supplied) != len(expected):
            return False
        return hmac.compare_digest(expected, supplied)


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def checkout_integrity_signature(reference: str, amount_in_cents: int, currency: str, secret: str) -> str:
    """Integrity hash the provider's checkout widget expects: sha256(reference + amount + currency + secret)."""
    return sha256_hex(f"{reference}{amount_in_cents}{currency}{secret}")


def _provider_string(value: Any) -> str:
    # Mirrors how the provider stringifies JSON values before hashing
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def resolve_property(data: dict, path: str) -> Any:
    """Follow a dotted path such as ``transaction.status`` through nested dicts."""
    current: Any = data
    for key in path.split("."):
        if not isinstance(current, dict) or key not in current:
            return None
        current = current[key]
    return current


def webhook_checksum(data: dict, properties: Iterable[str], timestamp: Any, secret: str) -> Optional[str]:
    """
    Expected event checksum: values of the named properties in the given order,
    then the event timestamp, then the events secret, hashed with SHA-256.

    Returns None when the envelope cannot be verified at all.
    """
    properties = list(properties or [])
    if not properties or not secret:
        return None
    if timestamp is None or isinstance(timestamp, bool) or not isinstance(timestamp, (int, str)):
        return None
    if isinstance(timestamp, str) and not timestamp.strip():
        return None

    values = [_provider_string(resolve_property(data, prop)) for prop in properties]
    return sha256_hex("".join(values) + str(timestamp) + secret)


def checksums_match(expected: str, claimed: Any) -> bool:
    if not expected or not isinstance(claimed, str):
        return False
    return hmac.compare_digest(expected.encode("ascii"), claimed.strip().lower().encode("ascii", "replace"))


def get_credential_signer(settings: Settings = Depends(get_settings)) -> CredentialSigner:
    return CredentialSigner(settings.TICKET_SECRET)

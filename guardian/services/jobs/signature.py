"""
Job Signature Verification

Jobs are signed by the controller with a secp256k1 key over the SHA-256
digest of the canonical signing message. Signatures travel as 64 bytes of
hex, ``r || s`` (32 bytes each). Public keys are hex-encoded SEC1 points,
compressed (33 bytes) or uncompressed (65 bytes).

Only low-s signatures are accepted (s <= n/2), so a signature can't be
re-encoded into a second valid form.
"""

import hashlib

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed, encode_dss_signature

from guardian.common.exceptions import SignatureFormatError

SIGNATURE_LENGTH = 64

# Order of the secp256k1 base point
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
_HALF_ORDER = SECP256K1_ORDER // 2


def _decode_hex(value: str, what: str) -> bytes:
    try:
        return bytes.fromhex(value)
    except (TypeError, ValueError) as e:
        raise SignatureFormatError(f"{what} is not valid hex: {e}") from e


def load_public_key(key_hex: str) -> ec.EllipticCurvePublicKey:
    """Decode a hex SEC1 point on secp256k1"""
    key_bytes = _decode_hex(key_hex, "public key")
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), key_bytes)
    except ValueError as e:
        raise SignatureFormatError(f"public key is not a secp256k1 point: {e}") from e


def _verify_digest(public_key: ec.EllipticCurvePublicKey, digest: bytes, r: int, s: int) -> bool:
    try:
        public_key.verify(
            encode_dss_signature(r, s),
            digest,
            ec.ECDSA(Prehashed(hashes.SHA256())),
        )
    except InvalidSignature:
        return False
    return True


def validate_payload(trusted_keys: list[str], message: str, signature_hex: str) -> bool:
    """
    Check that one of the trusted keys signed ``message``.

    Args:
        trusted_keys: Hex-encoded public keys
        message: Exact canonical message string
        signature_hex: Hex-encoded 64-byte ``r || s`` signature

    Returns:
        True if any key validates the signature, False otherwise

    Raises:
        SignatureFormatError: no keys configured, or a key / the signature
            can't be decoded
    """
    if not trusted_keys:
        raise SignatureFormatError("no host security keys configured")

    signature = _decode_hex(signature_hex, "signature")
    public_keys = [load_public_key(key) for key in trusted_keys]

    if len(signature) != SIGNATURE_LENGTH:
        return False

    r = int.from_bytes(signature[:32], "big")
    s = int.from_bytes(signature[32:], "big")
    if not (0 < r < SECP256K1_ORDER) or not (0 < s <= _HALF_ORDER):
        return False

    digest = hashlib.sha256(message.encode("utf-8")).digest()
    return any(_verify_digest(key, digest, r, s) for key in public_keys)

# commitment_registry/signing.py
"""
Ed25519 signatures over recorded roots.

A signed checkpoint binds (epoch, root, timestamp) so that observers
holding only the public key can check a root history export.
"""

import base64
import binascii
import logging
import os

from nacl.signing import SigningKey, VerifyKey
from nacl.exceptions import BadSignatureError

from .errors import CheckpointSignatureError, ConfigurationError
from .events import RootRecorded
from .hashing import to_hex


logger = logging.getLogger(__name__)

SIGNING_KEY_PATH = os.path.expanduser("~/.commitment_registry/signing_key")


def generate_signing_keypair() -> tuple[bytes, bytes]:
    """Generate Ed25519 keypair."""
    sk = SigningKey.generate()
    return sk.encode(), sk.verify_key.encode()


def load_or_create_signing_key(path: str = SIGNING_KEY_PATH) -> SigningKey:
    if os.path.exists(path):
        with open(path, "rb") as f:
            return SigningKey(f.read())

    logger.info("Generating new root signing keypair at %s", path)
    sk_bytes, vk_bytes = generate_signing_keypair()
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(sk_bytes)
    with open(path + ".pub", "wb") as f:
        f.write(vk_bytes)
    return SigningKey(sk_bytes)


def load_verify_key(path: str = SIGNING_KEY_PATH) -> VerifyKey:
    pub_path = path + ".pub"
    if not os.path.exists(pub_path):
        raise ConfigurationError(f"Public key not found at {pub_path}")
    with open(pub_path, "rb") as f:
        return VerifyKey(f.read())


def root_message(record: RootRecorded) -> bytes:
    return f"{record.epoch}|{to_hex(record.root)}|{record.timestamp}".encode()


def sign_root_record(signing_key: SigningKey, record: RootRecorded) -> str:
    signed = signing_key.sign(root_message(record))
    return base64.b64encode(signed.signature).decode()


def verify_root_record(verify_key: VerifyKey, signature_b64: str, record: RootRecorded) -> bool:
    try:
        verify_key.verify(root_message(record), base64.b64decode(signature_b64, validate=True))
        return True
    except (BadSignatureError, binascii.Error, ValueError):
        return False


def require_valid_root_record(verify_key: VerifyKey, signature_b64: str, record: RootRecorded) -> None:
    if not verify_root_record(verify_key, signature_b64, record):
        raise CheckpointSignatureError(
            f"Invalid signature for root at epoch {record.epoch}", epoch=record.epoch
        )

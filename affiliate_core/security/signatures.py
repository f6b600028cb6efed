"""HMAC-SHA256 signatures for partner postbacks"""
import hashlib
import hmac
from typing import Optional, Union


def compute_signature(secret: str, payload: Union[bytes, str]) -> str:
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_signature(secret: str, payload: Union[bytes, str], signature: Optional[str]) -> bool:
    """
    Constant-time check of a hex signature. Accepts an optional "sha256=" prefix.
    """
    if not signature:
        return False
    provided = signature.strip()
    if provided.lower().startswith("sha256="):
        provided = provided[len("sha256="):]
    expected = compute_signature(secret, payload)
    return hmac.compare_digest(expected.encode("ascii"), provided.lower().encode("utf-8"))

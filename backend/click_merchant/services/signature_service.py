"""
Signature Service for Click Callbacks

Implements the MD5 sign_string check from the Click merchant API.

Canonical payload, in this exact order:
    click_trans_id + service_id + SECRET_KEY + merchant_trans_id
    + merchant_prepare_id (Complete only) + amount + action + sign_time
"""
import hashlib
import hmac
from typing import Optional, Union

from pydantic import SecretStr

ACTION_PREPARE = 0
ACTION_COMPLETE = 1

Number = Union[int, str]


def build_sign_payload(
    click_trans_id: Number,
    service_id: Number,
    secret_key: Union[str, SecretStr],
    merchant_trans_id: str,
    amount: str,
    action: int,
    sign_time: str,
    merchant_prepare_id: Optional[Number] = None
) -> str:
    """
    Concatenate callback fields into the string Click signs.

    merchant_prepare_id is only part of the payload for the Complete action.
    """
    if isinstance(secret_key, SecretStr):
        secret_key = secret_key.get_secret_value()

    parts = [str(click_trans_id), str(service_id), secret_key, str(merchant_trans_id)]
    if merchant_prepare_id is not None:
        parts.append(str(merchant_prepare_id))
    parts.extend([str(amount), str(action), sign_time])
    return "".join(parts)


def compute_click_signature(**fields) -> str:
    """
    Compute the lowercase hex MD5 digest Click expects in sign_string.

    Accepts the same keyword arguments as build_sign_payload.
    """
    payload = build_sign_payload(**fields)
    return hashlib.md5(payload.encode("utf-8")).hexdigest()


def verify_click_signature(sign_string: str, **fields) -> bool:
    """
    Check a callback's sign_string against the expected digest.

    Args:
        sign_string: Value Click sent; compared case-insensitively
        **fields: Callback fields, see build_sign_payload

    Returns:
        True if the signature matches, False otherwise (never raises for
        malformed sign_string values)
    """
    if not isinstance(sign_string, str):
        return False

    expected = compute_click_signature(**fields)

    # Constant-time comparison on bytes so non-ASCII input compares unequal
    return hmac.compare_digest(
        expected.encode("ascii"),
        sign_string.strip().lower().encode("utf-8")
    )

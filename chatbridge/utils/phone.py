"""
Phone address normalization.

Canonical form is ``+<country code><national number>`` with digits only. Provider-native forms
(``18095551234@c.us``, ``whatsapp:+18095551234``) are accepted as input.
"""

import re

from chatbridge.domain.errors import InvalidAddressError

_NON_DIGITS = re.compile(r"\D")
_NATIVE_PREFIXES = ("whatsapp:", "sms:", "tel:")
_NATIVE_SUFFIXES = ("@c.us", "@s.whatsapp.net")

MIN_DIGITS = 7
MAX_DIGITS = 15  # E.164 upper bound


def _strip_native(raw: str) -> str:
    value = raw.strip()
    lowered = value.lower()
    for prefix in _NATIVE_PREFIXES:
        if lowered.startswith(prefix):
            value = value[len(prefix) :]
            break
    for suffix in _NATIVE_SUFFIXES:
        if value.lower().endswith(suffix):
            value = value[: -len(suffix)]
            break
    return value


def normalize_phone(raw: str | None, default_country_code: str | None = None) -> str:
    """
    Normalize a phone number to ``+<digits>``.

    A bare 10-digit number gets ``default_country_code`` prepended. Which region that is
    depends on the deployment, so the caller passes the tenant's setting.

    Args:
        raw: Address in any supported notation
        default_country_code: Digits to prepend to 10-digit numbers, or None

    Returns:
        Canonical address, e.g. ``+18095551234``

    Raises:
        InvalidAddressError: If the input is empty or has an implausible digit count
    """
    if raw is None or not raw.strip():
        raise InvalidAddressError(raw, "address is empty")

    value = _strip_native(raw)
    if "@" in value:
        # Group chats (@g.us) and other non-phone identifiers
        raise InvalidAddressError(raw, "not a phone address")

    digits = _NON_DIGITS.sub("", value)
    if len(digits) == 10 and default_country_code and not value.startswith("+"):
        digits = default_country_code.lstrip("+") + digits

    if len(digits) < MIN_DIGITS or len(digits) > MAX_DIGITS:
        raise InvalidAddressError(raw, f"expected {MIN_DIGITS}-{MAX_DIGITS} digits")
    if digits.startswith("0"):
        raise InvalidAddressError(raw, "country code cannot start with 0")

    return f"+{digits}"


def is_valid_phone(raw: str | None, default_country_code: str | None = None) -> bool:
    try:
        normalize_phone(raw, default_country_code)
    except InvalidAddressError:
        return False
    return True


def digits_only(address: str) -> str:
    """``+18095551234`` -> ``18095551234``."""
    return _NON_DIGITS.sub("", address)

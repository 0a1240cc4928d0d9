from __future__ import annotations

import secrets
import time

from flask import current_app

from utils.classes import Section

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _to_base36(n: int) -> str:
    if n == 0:
        return "0"
    digits = []
    x = abs(n)
    while x:
        x, rem = divmod(x, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def _rand_segment(length: int = 4) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def generate_transaction_id() -> str:
    """Opaque payment reference, e.g. ``TXN-M2K4Z9QX-7F3A``.

    Uniqueness is enforced by the payments table; callers retry on collision.
    """
    prefix = current_app.config.get("TRANSACTION_PREFIX") or "TXN"
    stamp = _to_base36(int(time.time() * 1000))
    return f"{prefix}-{stamp}-{_rand_segment()}"


def normalize_entry_year(value) -> str:
    """Reduce an entry year (2025, "2025", "25") to its two-digit form."""
    text = str(value or "").strip()
    if not text.isdigit():
        return ""
    return text[-2:].zfill(2)


def format_reg_number(section: Section | str, year_of_entry: str, serial: int) -> str:
    section = Section(section)
    if section == Section.PRIMARY:
        prefix = current_app.config.get("REG_PREFIX_PRIMARY") or "SG"
    else:
        prefix = current_app.config.get("REG_PREFIX_SECONDARY") or "SGS"
    return f"{prefix}/{year_of_entry}/{serial:03d}"

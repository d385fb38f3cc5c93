"""
Validators and formatters for Indonesian cooperative data
"""
import re
from decimal import Decimal
from typing import Union


def normalize_indonesia_phone(phone: str) -> str:
    """
    Normalize an Indonesian phone number to the 62 country prefix.
    - 08123456789   -> 628123456789
    - +628123456789 -> 628123456789
    - 8123456789    -> 628123456789
    """
    cleaned = re.sub(r'[^0-9]', '', phone)

    if cleaned.startswith('0'):
        return '62' + cleaned[1:]
    elif not cleaned.startswith('62'):
        return '62' + cleaned

    return cleaned


def validate_indonesia_phone(phone: str) -> bool:
    """Accepts +62, 62 or 0 prefixes followed by 9 to 13 digits."""
    normalized = normalize_indonesia_phone(phone)
    return re.match(r'^62[0-9]{9,13}$', normalized) is not None


def validate_cooperative_code(code: str) -> bool:
    """Short cooperative code: 2-10 letters, digits or dashes."""
    return re.match(r'^[A-Z0-9\-]{2,10}$', code.strip().upper()) is not None


def validate_registration_number(number: str) -> bool:
    """
    Legal entity number as issued by the cooperative ministry,
    e.g. 518/BH/XVI.2/2010.
    """
    return re.match(r'^[A-Za-z0-9./\-]{3,50}$', number.strip()) is not None


def validate_note_reference(reference: str) -> bool:
    """Note references point to a note in the notes to financial statements."""
    return re.match(r'^[A-Za-z0-9]{1,5}$', reference) is not None


def format_rupiah(amount: Union[Decimal, float, int, None]) -> str:
    """
    Format an amount as Indonesian Rupiah: Rp 1.234.567
    """
    if amount is None:
        amount = 0
    value = float(amount)
    sign = "-" if value < 0 else ""
    formatted = f"{abs(value):,.0f}".replace(",", ".")
    return f"{sign}Rp {formatted}"

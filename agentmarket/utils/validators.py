import re

from .money import to_minor

BANK_DETAIL_FIELDS = ('bank_name', 'account_number', 'account_name')


def validate_required(data, fields):
    """Validate required fields in data dictionary"""
    missing = [field for field in fields if field not in data or data[field] is None or data[field] == '']
    return len(missing) == 0, missing


def validate_account_number(account_number):
    """NUBAN account numbers are exactly 10 digits"""
    return re.match(r'^\d{10}$', str(account_number or '')) is not None


def clean_bank_details(bank_details):
    """Return a normalized copy of the payout destination, or raise ValueError."""
    if not isinstance(bank_details, dict):
        raise ValueError("Bank details are required")

    valid, missing = validate_required(bank_details, BANK_DETAIL_FIELDS)
    if not valid:
        raise ValueError(f"Missing bank details: {', '.join(missing)}")

    cleaned = {field: str(bank_details[field]).strip() for field in BANK_DETAIL_FIELDS}
    if not validate_account_number(cleaned['account_number']):
        raise ValueError("Account number must be 10 digits")
    return cleaned


def parse_amount(value):
    """Major-unit amount from a request body -> positive minor units, or raise ValueError."""
    minor = to_minor(value)
    if minor <= 0:
        raise ValueError("Amount must be greater than zero")
    return minor


def parse_points(value):
    """Whole, positive points count from a request body, or raise ValueError."""
    if isinstance(value, int) and not isinstance(value, bool):
        points = value
    elif isinstance(value, str) and value.strip().isdigit():
        points = int(value.strip())
    else:
        raise ValueError("Points must be a whole number")
    if points <= 0:
        raise ValueError("Points must be greater than zero")
    return points

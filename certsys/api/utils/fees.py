"""
Fee calculator for certificate requests.

Fees depend on processing urgency and are charged per copy:
- Regular (7-10 days): PHP 50
- Rush (3-5 days): PHP 100
- Express (1-2 days): PHP 150
"""
from decimal import Decimal
from typing import Any, Dict

from certsys.api.utils.validators import ValidationError

URGENCY_OPTIONS: Dict[str, Dict[str, Any]] = {
    'regular': {'label': 'Regular', 'processing': '7-10 days', 'fee': Decimal('50.00')},
    'rush': {'label': 'Rush', 'processing': '3-5 days', 'fee': Decimal('100.00')},
    'express': {'label': 'Express', 'processing': '1-2 days', 'fee': Decimal('150.00')},
}

MAX_QUANTITY = 10


def normalize_urgency(urgency) -> str:
    value = (urgency or 'regular').strip().lower()
    if value not in URGENCY_OPTIONS:
        raise ValidationError('urgency', f"Must be one of: {', '.join(URGENCY_OPTIONS)}")
    return value


def normalize_quantity(quantity) -> int:
    if quantity in (None, ''):
        return 1
    try:
        value = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError('quantity', 'Quantity must be a whole number')
    if value < 1 or value > MAX_QUANTITY:
        raise ValidationError('quantity', f'Quantity must be between 1 and {MAX_QUANTITY}')
    return value


def calculate_fee(urgency=None, quantity=None) -> Dict[str, Any]:
    """
    Calculate the fee for a certificate request.

    Returns:
        {'urgency', 'label', 'processing', 'unit_fee', 'quantity', 'total'}
    """
    key = normalize_urgency(urgency)
    qty = normalize_quantity(quantity)
    option = URGENCY_OPTIONS[key]
    return {
        'urgency': key,
        'label': option['label'],
        'processing': option['processing'],
        'unit_fee': option['fee'],
        'quantity': qty,
        'total': option['fee'] * qty,
    }


def fee_schedule():
    """Serializable fee table for clients."""
    return [
        {'urgency': key, 'label': opt['label'], 'processing': opt['processing'], 'fee': float(opt['fee'])}
        for key, opt in URGENCY_OPTIONS.items()
    ]

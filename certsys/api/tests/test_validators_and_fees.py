from datetime import date
from decimal import Decimal
from itertools import combinations

import pytest

from certsys.api.utils.fees import calculate_fee, fee_schedule
from certsys.api.utils.time import format_notification_time, long_date, ordinal
from certsys.api.utils.validators import (
    REQUIRED_CERTIFICATE_FIELDS,
    ValidationError,
    calculate_age,
    validate_email,
    validate_phone,
    validate_user_data,
)

COMPLETE_USER = {
    'full_name': 'Juan Dela Cruz',
    'address': 'Purok 2, Barangay Luna',
    'date_of_birth': '1990-01-05',
    'place_of_birth': 'Surigao City',
    'gender': 'Male',
    'civil_status': 'Single',
}


def test_validate_user_data_complete_record_has_no_missing_fields():
    assert validate_user_data(COMPLETE_USER) == []


def test_validate_user_data_reports_exactly_the_missing_labels():
    names = [name for name, _ in REQUIRED_CERTIFICATE_FIELDS]
    labels = dict(REQUIRED_CERTIFICATE_FIELDS)
    for size in (1, 2, 6):
        for dropped in combinations(names, size):
            record = {k: v for k, v in COMPLETE_USER.items() if k not in dropped}
            assert set(validate_user_data(record)) == {labels[n] for n in dropped}


def test_validate_user_data_treats_blank_strings_as_missing():
    record = dict(COMPLETE_USER, place_of_birth='   ', civil_status='')
    assert validate_user_data(record) == ['Place of Birth', 'Civil Status']


def test_validate_user_data_accepts_objects():
    class Profile:
        pass

    profile = Profile()
    for key, value in COMPLETE_USER.items():
        setattr(profile, key, value)
    profile.gender = None
    assert validate_user_data(profile) == ['Gender']


def test_phone_and_email_validation():
    assert validate_phone('0917 123 4567') == '09171234567'
    assert validate_phone('+639171234567') == '+639171234567'
    with pytest.raises(ValidationError) as exc:
        validate_phone('12345')
    assert exc.value.field == 'phone_number'

    assert validate_email(' Juan@Example.COM ') == 'juan@example.com'
    with pytest.raises(ValidationError):
        validate_email('not-an-email')


def test_calculate_age_counts_birthday():
    assert calculate_age(date(2000, 6, 15), date(2026, 6, 14)) == 25
    assert calculate_age(date(2000, 6, 15), date(2026, 6, 15)) == 26


def test_date_formatting_helpers():
    assert [ordinal(d) for d in (1, 2, 3, 4, 11, 12, 13, 21, 22, 23)] == [
        '1st', '2nd', '3rd', '4th', '11th', '12th', '13th', '21st', '22nd', '23rd'
    ]
    assert long_date('1990-01-05') == 'January 5, 1990'
    assert long_date(None) == ''


def test_notification_time_labels():
    from datetime import datetime, timedelta

    now = datetime(2026, 10, 19, 12, 0, 0)
    assert format_notification_time(now - timedelta(seconds=20), now) == 'Just now'
    assert format_notification_time(now - timedelta(minutes=1), now) == '1 minute ago'
    assert format_notification_time(now - timedelta(hours=3), now) == '3 hours ago'
    assert format_notification_time(now - timedelta(days=2), now) == '2 days ago'
    assert format_notification_time(datetime(2026, 9, 1, 8, 0), now) == 'Sep 1'
    assert format_notification_time(datetime(2025, 9, 1, 8, 0), now) == 'Sep 1, 2025'


def test_calculate_fee_defaults_to_one_regular_copy():
    fee = calculate_fee()
    assert fee['urgency'] == 'regular'
    assert fee['quantity'] == 1
    assert fee['total'] == Decimal('50.00')


def test_calculate_fee_multiplies_by_quantity():
    fee = calculate_fee('Express', '3')
    assert fee['urgency'] == 'express'
    assert fee['unit_fee'] == Decimal('150.00')
    assert fee['total'] == Decimal('450.00')


@pytest.mark.parametrize('urgency,quantity,field', [
    ('overnight', 1, 'urgency'),
    ('rush', 0, 'quantity'),
    ('rush', 11, 'quantity'),
    ('rush', 'two', 'quantity'),
])
def test_calculate_fee_rejects_bad_input(urgency, quantity, field):
    with pytest.raises(ValidationError) as exc:
        calculate_fee(urgency, quantity)
    assert exc.value.field == field


def test_fee_schedule_is_serializable():
    schedule = fee_schedule()
    assert [row['urgency'] for row in schedule] == ['regular', 'rush', 'express']
    assert all(isinstance(row['fee'], float) for row in schedule)

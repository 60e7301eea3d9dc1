"""
Tests for participant eligibility rules.
"""

from datetime import date

import pytest

from academy_booking.core.exceptions import EligibilityError
from academy_booking.models import Academy, Batch, Participant
from academy_booking.services.eligibility import calculate_age, validate_participant, validate_participants

TODAY = date(2026, 6, 15)


def make_participant(**overrides) -> Participant:
    values = {
        "id": 1,
        "user_id": 1,
        "first_name": "Asha",
        "last_name": "Rao",
        "date_of_birth": date(2016, 1, 1),
        "gender": "female",
        "is_disabled": False,
    }
    values.update(overrides)
    return Participant(**values)


def make_batch(**overrides) -> Batch:
    values = {
        "id": 1,
        "name": "Evening Juniors",
        "age_min": 5,
        "age_max": 18,
        "allowed_genders": None,
        "is_allowed_disabled": True,
    }
    values.update(overrides)
    return Batch(**values)


def make_academy(**overrides) -> Academy:
    values = {
        "id": 1,
        "name": "Smash Badminton Academy",
        "age_min": None,
        "age_max": None,
        "allowed_genders": None,
        "allowed_disabled": True,
        "is_only_for_disabled": False,
    }
    values.update(overrides)
    return Academy(**values)


def test_calculate_age_counts_birthday_on_the_day():
    dob = date(2010, 6, 15)
    assert calculate_age(dob, date(2020, 6, 14)) == 9
    assert calculate_age(dob, date(2020, 6, 15)) == 10


def test_eligible_participant_returns_age():
    assert validate_participant(make_participant(), make_batch(), make_academy(), TODAY) == 10


def test_missing_date_of_birth():
    with pytest.raises(EligibilityError, match="does not have a date of birth"):
        validate_participant(make_participant(date_of_birth=None), make_batch(), make_academy(), TODAY)


def test_batch_age_range():
    with pytest.raises(EligibilityError) as exc_info:
        validate_participant(
            make_participant(date_of_birth=date(2004, 1, 1)), make_batch(), make_academy(), TODAY
        )
    assert exc_info.value.message == (
        "Participant Asha age (22) is outside the batch age range (5-18 years)"
    )
    assert exc_info.value.details["rule"] == "batch_age"


def test_academy_age_range_checked_after_batch():
    academy = make_academy(age_min=12, age_max=16)
    with pytest.raises(EligibilityError, match="coaching center age range"):
        validate_participant(make_participant(), make_batch(), academy, TODAY)


def test_batch_minimum_without_maximum():
    batch = make_batch(age_min=12, age_max=None)
    with pytest.raises(EligibilityError) as exc_info:
        validate_participant(make_participant(), batch, make_academy(), TODAY)
    assert exc_info.value.message == (
        "Participant Asha age (10) is outside the batch age range (12+ years)"
    )

    assert validate_participant(make_participant(), make_batch(age_min=8, age_max=None), make_academy(), TODAY) == 10


def test_academy_maximum_without_minimum():
    academy = make_academy(age_min=None, age_max=8)
    with pytest.raises(EligibilityError) as exc_info:
        validate_participant(make_participant(), make_batch(), academy, TODAY)
    assert exc_info.value.message == (
        "Participant Asha age (10) is outside the coaching center age range (up to 8 years)"
    )
    assert exc_info.value.details["rule"] == "academy_age"


def test_batch_maximum_without_minimum():
    batch = make_batch(age_min=None, age_max=9)
    with pytest.raises(EligibilityError, match=r"batch age range \(up to 9 years\)"):
        validate_participant(make_participant(), batch, make_academy(), TODAY)


def test_no_age_bounds_accepts_any_age():
    batch = make_batch(age_min=None, age_max=None)
    assert validate_participant(make_participant(), batch, make_academy(), TODAY) == 10


def test_batch_gender_restriction():
    batch = make_batch(allowed_genders=["male"])
    with pytest.raises(EligibilityError, match="not allowed for this batch"):
        validate_participant(make_participant(), batch, make_academy(), TODAY)


def test_academy_gender_restriction():
    academy = make_academy(allowed_genders=["male", "other"])
    with pytest.raises(EligibilityError, match="not allowed by the coaching center"):
        validate_participant(make_participant(), make_batch(), academy, TODAY)


def test_unknown_gender_is_not_restricted():
    batch = make_batch(allowed_genders=["male"])
    assert validate_participant(make_participant(gender=None), batch, make_academy(), TODAY) == 10


def test_batch_rejects_disabled_participants():
    batch = make_batch(is_allowed_disabled=False)
    with pytest.raises(EligibilityError, match="does not allow disabled participants"):
        validate_participant(make_participant(is_disabled=True), batch, make_academy(), TODAY)


def test_academy_only_for_disabled():
    academy = make_academy(is_only_for_disabled=True)
    with pytest.raises(EligibilityError, match="exclusively for disabled participants"):
        validate_participant(make_participant(), make_batch(), academy, TODAY)
    assert validate_participant(make_participant(is_disabled=True), make_batch(), academy, TODAY) == 10


def test_first_failing_participant_is_reported():
    ok = make_participant(id=1)
    too_old = make_participant(id=2, first_name="Kabir", date_of_birth=date(2000, 1, 1))
    with pytest.raises(EligibilityError) as exc_info:
        validate_participants([ok, too_old], make_batch(), make_academy(), TODAY)
    assert exc_info.value.details["participant_id"] == 2


def test_validate_participants_maps_ids_to_ages():
    people = [make_participant(id=1), make_participant(id=2, date_of_birth=date(2012, 1, 1))]
    assert validate_participants(people, make_batch(), make_academy(), TODAY) == {1: 10, 2: 14}

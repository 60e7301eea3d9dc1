"""
Participant eligibility rules for a batch and the academy running it.

Checks run in a fixed order per participant: age, then gender, then
disability. The batch is checked before the academy in each group so the
more specific restriction is the one reported. The first failure raises.
"""

from datetime import date
from typing import Iterable, Optional

from academy_booking.core.exceptions import EligibilityError
from academy_booking.models.academy import Academy
from academy_booking.models.batch import Batch
from academy_booking.models.participant import Gender, Participant

_GENDER_VALUES = {g.value for g in Gender}


def calculate_age(date_of_birth: date, today: date) -> int:
    """Whole years, counting the birthday as reached on the day itself."""
    age = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


def _label(participant: Participant) -> str:
    return participant.first_name or str(participant.id)


def _allowed(values: Optional[Iterable[str]]) -> list[str]:
    return [v for v in (values or []) if v]


def _describe_range(age_min: Optional[int], age_max: Optional[int]) -> str:
    if age_min is None:
        return f"up to {age_max} years"
    if age_max is None:
        return f"{age_min}+ years"
    return f"{age_min}-{age_max} years"


def _outside(age: int, age_min: Optional[int], age_max: Optional[int]) -> bool:
    return (age_min is not None and age < age_min) or (age_max is not None and age > age_max)


def _check_age(participant: Participant, age: int, batch: Batch, academy: Academy) -> None:
    """Each bound is enforced on its own; a missing bound leaves that end open."""
    name = _label(participant)
    if _outside(age, batch.age_min, batch.age_max):
        raise EligibilityError(
            f"Participant {name} age ({age}) is outside the batch age range "
            f"({_describe_range(batch.age_min, batch.age_max)})",
            details={"participant_id": participant.id, "rule": "batch_age"},
        )
    if _outside(age, academy.age_min, academy.age_max):
        raise EligibilityError(
            f"Participant {name} age ({age}) is outside the coaching center age range "
            f"({_describe_range(academy.age_min, academy.age_max)})",
            details={"participant_id": participant.id, "rule": "academy_age"},
        )


def _check_gender(participant: Participant, batch: Batch, academy: Academy) -> None:
    gender = (participant.gender or "").lower()
    if gender not in _GENDER_VALUES:
        # Unset or unknown gender is never restricted
        return

    name = _label(participant)
    batch_genders = _allowed(batch.allowed_genders)
    if batch_genders and gender not in [g.lower() for g in batch_genders]:
        raise EligibilityError(
            f"Participant {name} gender ({gender}) is not allowed for this batch. "
            f"Batch allowed genders: {', '.join(batch_genders)}",
            details={"participant_id": participant.id, "rule": "batch_gender"},
        )

    academy_genders = _allowed(academy.allowed_genders)
    if academy_genders and gender not in [g.lower() for g in academy_genders]:
        raise EligibilityError(
            f"Participant {name} gender ({gender}) is not allowed by the coaching center. "
            f"Allowed genders: {', '.join(academy_genders)}",
            details={"participant_id": participant.id, "rule": "academy_gender"},
        )


def _check_disability(participant: Participant, batch: Batch, academy: Academy) -> None:
    name = _label(participant)
    has_disability = bool(participant.is_disabled)

    if has_disability and not batch.is_allowed_disabled:
        raise EligibilityError(
            f"Participant {name} has a disability. This batch ({batch.name}) does not "
            f"allow disabled participants.",
            details={"participant_id": participant.id, "rule": "batch_disability"},
        )

    if academy.is_only_for_disabled:
        if not has_disability:
            raise EligibilityError(
                f"Participant {name} does not have a disability. This coaching center "
                f"({academy.name}) is exclusively for disabled participants.",
                details={"participant_id": participant.id, "rule": "academy_disabled_only"},
            )
    elif has_disability and not academy.allowed_disabled:
        raise EligibilityError(
            f"Participant {name} has a disability. This coaching center ({academy.name}) "
            f"does not allow disabled participants.",
            details={"participant_id": participant.id, "rule": "academy_disability"},
        )


def validate_participant(
    participant: Participant,
    batch: Batch,
    academy: Academy,
    today: Optional[date] = None,
) -> int:
    """Raise EligibilityError if the participant may not join; return their age."""
    if participant.date_of_birth is None:
        raise EligibilityError(
            f"Participant {_label(participant)} does not have a date of birth. "
            f"Age validation is required.",
            details={"participant_id": participant.id, "rule": "date_of_birth"},
        )

    age = calculate_age(participant.date_of_birth, today or date.today())
    _check_age(participant, age, batch, academy)
    _check_gender(participant, batch, academy)
    _check_disability(participant, batch, academy)
    return age


def validate_participants(
    participants: Iterable[Participant],
    batch: Batch,
    academy: Academy,
    today: Optional[date] = None,
) -> dict[int, int]:
    """Validate every participant. Returns participant id -> age."""
    today = today or date.today()
    return {p.id: validate_participant(p, batch, academy, today) for p in participants}

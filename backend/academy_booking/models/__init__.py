from academy_booking.models.user import User, UserRole
from academy_booking.models.participant import Participant, Gender
from academy_booking.models.sport import Sport
from academy_booking.models.academy import Academy, ApprovalStatus, PublicationStatus
from academy_booking.models.batch import Batch
from academy_booking.models.booking import (
    Booking,
    BookingParticipant,
    BookingStatus,
    PaymentStatus,
    PayoutStatus,
)
from academy_booking.models.transaction import Transaction, TransactionStatus
from academy_booking.models.payout import Payout, PayoutAccount
from academy_booking.models.platform_settings import PlatformSettings
from academy_booking.models.audit_event import AuditEvent

__all__ = [
    "User",
    "UserRole",
    "Participant",
    "Gender",
    "Sport",
    "Academy",
    "ApprovalStatus",
    "PublicationStatus",
    "Batch",
    "Booking",
    "BookingParticipant",
    "BookingStatus",
    "PaymentStatus",
    "PayoutStatus",
    "Transaction",
    "TransactionStatus",
    "Payout",
    "PayoutAccount",
    "PlatformSettings",
    "AuditEvent",
]

"""
services/booking/workflow.py
Booking status rules. Pure functions over (actor, booking): no I/O here,
the router resolves the actor's provider profile and passes its id in.

Nominal lifecycle:
    pending  -> accepted | rejected | cancelled
    accepted -> completed | cancelled
Only *who* may set *which* status is enforced. Adjacency is not: a provider
can move pending -> completed or re-accept a rejected booking.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from shared.exceptions import Forbidden, InvalidRequest
from shared.models.models import Booking, BookingStatus, User, UserRole

CUSTOMER_SETTABLE = frozenset({BookingStatus.CANCELLED})
PROVIDER_SETTABLE = frozenset(
    {BookingStatus.ACCEPTED, BookingStatus.REJECTED, BookingStatus.COMPLETED}
)

# Documented for clients; not consulted by authorize_transition.
NOMINAL_TRANSITIONS = {
    BookingStatus.PENDING: frozenset(
        {BookingStatus.ACCEPTED, BookingStatus.REJECTED, BookingStatus.CANCELLED}
    ),
    BookingStatus.ACCEPTED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.REJECTED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class BookingParties:
    is_customer: bool
    is_provider: bool


def parse_status(value: Optional[str]) -> BookingStatus:
    """Map raw input to a BookingStatus or fail with InvalidRequest."""
    try:
        return BookingStatus(value)
    except ValueError:
        raise InvalidRequest("Invalid status provided.")


def resolve_parties(
    actor: User,
    actor_profile_id: Optional[uuid.UUID],
    booking: Booking,
) -> BookingParties:
    is_customer = actor.role == UserRole.CUSTOMER and actor.id == booking.customer_id
    is_provider = (
        actor.role == UserRole.PROVIDER
        and actor_profile_id is not None
        and actor_profile_id == booking.provider_id
    )
    return BookingParties(is_customer=is_customer, is_provider=is_provider)


def authorize_transition(
    actor: User,
    actor_profile_id: Optional[uuid.UUID],
    booking: Booking,
    target: BookingStatus,
) -> None:
    """Raise Forbidden unless `actor` may set `booking` to `target`."""
    parties = resolve_parties(actor, actor_profile_id, booking)

    if not parties.is_customer and not parties.is_provider:
        raise Forbidden("You are not authorized to update this booking.")
    if parties.is_customer and target not in CUSTOMER_SETTABLE:
        raise Forbidden("Customers can only cancel bookings.")
    if parties.is_provider and target not in PROVIDER_SETTABLE:
        raise Forbidden("Providers can only accept, reject, or complete.")


def apply_transition(
    actor: User,
    actor_profile_id: Optional[uuid.UUID],
    booking: Booking,
    raw_status: Optional[str],
) -> BookingStatus:
    """
    Validate, authorize and apply a status change in place.
    Returns the previous status.
    """
    target = parse_status(raw_status)
    authorize_transition(actor, actor_profile_id, booking, target)
    previous = booking.status
    booking.status = target
    return previous


def is_nominal_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in NOMINAL_TRANSITIONS[current]

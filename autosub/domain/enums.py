"""Domain enumerations and state-transition rules."""

import enum


class ReservationStep(str, enum.Enum):
    IDENTITY = "IDENTITY"
    DOCUMENTS = "DOCUMENTS"
    CONTRACT = "CONTRACT"
    PAYMENT = "PAYMENT"
    SUBMITTED = "SUBMITTED"


# State machine: maps current step -> the single step a passed gate leads to
FORWARD_TRANSITIONS: dict[ReservationStep, ReservationStep] = {
    ReservationStep.IDENTITY: ReservationStep.DOCUMENTS,
    ReservationStep.DOCUMENTS: ReservationStep.CONTRACT,
    ReservationStep.CONTRACT: ReservationStep.PAYMENT,
    ReservationStep.PAYMENT: ReservationStep.SUBMITTED,
}

# Backward moves are always allowed, except out of the terminal step
BACKWARD_TRANSITIONS: dict[ReservationStep, ReservationStep] = {
    ReservationStep.DOCUMENTS: ReservationStep.IDENTITY,
    ReservationStep.CONTRACT: ReservationStep.DOCUMENTS,
    ReservationStep.PAYMENT: ReservationStep.CONTRACT,
}


class ClientType(str, enum.Enum):
    PARTICULIER = "particulier"
    ENTREPRISE = "entreprise"
    TOURISTE = "touriste"


class TierKind(str, enum.Enum):
    ENGAGEMENT = "engagement"
    MILEAGE = "mileage"
    INSURANCE = "insurance"


class SubscriptionStatus(str, enum.Enum):
    """Back-office lifecycle of a persisted record."""

    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    TERMINATED = "TERMINATED"


class PlanHealth(str, enum.Enum):
    """Term-based health of a plan as shown to its owner."""

    ACTIVE = "active"
    WARNING = "warning"
    EXPIRED = "expired"

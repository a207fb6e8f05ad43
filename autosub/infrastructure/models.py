"""
SQLAlchemy ORM models.

Tables
------
* ``users``          -- session owners (identity provider mirror)
* ``vehicles``       -- vehicles with their subscription options (JSON)
* ``cities``         -- delivery cities and their price factor
* ``subscriptions``  -- persisted subscription records

``vehicles.subscription_options`` keeps the catalog's document shape::

    {"engagement": [{"months", "monthlyPrice", "label"}],
     "mileage": [{"km", "additionalPrice", "label"}],
     "insurance": [{"type", "franchiseAmount", "additionalPrice", "label"}],
     "additionalDriverPrice": 45}

``subscriptions.snapshot`` holds the JSON dump of ``record_adapter``; the
columns next to it exist for look-ups and back-office filtering.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Index,
    Numeric,
    String,
    func,
)

from .database import Base
from autosub.domain.enums import SubscriptionStatus


class UserModel(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    display_name = Column(String(120), nullable=False, default="")
    email = Column(String(255), unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class VehicleModel(Base):
    __tablename__ = "vehicles"

    id = Column(String(64), primary_key=True)
    name = Column(String(120), nullable=False)
    brand_id = Column(String(64), nullable=True)
    category = Column(String(40), nullable=True)
    available = Column(Boolean, default=True)
    subscription_options = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_vehicles_category", "category"),
    )


class CityModel(Base):
    __tablename__ = "cities"

    # normalised name, e.g. "casablanca"
    id = Column(String(64), primary_key=True)
    name = Column(String(120), nullable=False)
    factor = Column(Numeric(6, 3), nullable=False, default=1)


class SubscriptionModel(Base):
    __tablename__ = "subscriptions"

    reservation_id = Column(String(32), primary_key=True)
    owner_id = Column(String(64), nullable=False)
    vehicle_id = Column(String(64), nullable=False)
    status = Column(
        Enum(SubscriptionStatus),
        default=SubscriptionStatus.ACTIVE,
        nullable=False,
    )
    total_price = Column(Numeric(10, 2), nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=False)
    snapshot = Column(JSON, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_subscriptions_owner", "owner_id"),
        Index("idx_subscriptions_status", "status"),
    )

"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 3 sample users
  - 5 sample vehicles with their subscription options
  - 8 delivery cities with their price factors
"""

import asyncio

from sqlalchemy import text

from autosub.domain.pricing import normalize_city
from autosub.infrastructure.database import async_session_factory, dispose_engine
from autosub.infrastructure.models import CityModel, UserModel, VehicleModel


USERS = [
    {"id": "u-yasmine", "display_name": "Yasmine Benali", "email": "yasmine@example.com"},
    {"id": "u-karim", "display_name": "Karim Alaoui", "email": "karim@example.com"},
    {"id": "u-sofia", "display_name": "Sofia Tazi", "email": "sofia@example.com"},
]

_STANDARD_MILEAGE = [
    {"km": 800, "additionalPrice": 0, "label": "Included"},
    {"km": 1000, "additionalPrice": 9.99},
    {"km": 1250, "additionalPrice": 14.99},
    {"km": 1500, "additionalPrice": 43.99},
    {"km": 2000, "additionalPrice": 109.99},
    {"km": 2500, "additionalPrice": 175.99},
]


def _insurance(plus_price: int) -> list[dict]:
    return [
        {"type": "ALL RISKS", "franchiseAmount": 1100, "additionalPrice": 0, "label": "Included"},
        {"type": "ALL RISKS PLUS", "franchiseAmount": 150, "additionalPrice": plus_price},
    ]


VEHICLES = [
    {
        "id": "peugeot-208",
        "name": "Peugeot 208",
        "brand_id": "peugeot",
        "category": "compact",
        "subscription_options": {
            "engagement": [
                {"months": 6, "monthlyPrice": 420},
                {"months": 3, "monthlyPrice": 450},
                {"months": 0, "monthlyPrice": 480, "label": "No commitment"},
            ],
            "mileage": _STANDARD_MILEAGE,
            "insurance": _insurance(100),
            "additionalDriverPrice": 12,
        },
    },
    {
        "id": "peugeot-3008",
        "name": "Peugeot 3008",
        "brand_id": "peugeot",
        "category": "suv",
        "subscription_options": {
            "engagement": [
                {"months": 12, "monthlyPrice": 610},
                {"months": 6, "monthlyPrice": 640},
                {"months": 0, "monthlyPrice": 690, "label": "No commitment"},
            ],
            "mileage": _STANDARD_MILEAGE,
            "insurance": _insurance(110),
            "additionalDriverPrice": 12,
        },
    },
    {
        "id": "audi-a3",
        "name": "Audi A3",
        "brand_id": "audi",
        "category": "compact",
        "subscription_options": {
            "engagement": [
                {"months": 6, "monthlyPrice": 560},
                {"months": 3, "monthlyPrice": 590},
                {"months": 0, "monthlyPrice": 630, "label": "No commitment"},
            ],
            "mileage": [
                {"km": 800, "additionalPrice": 0, "label": "Included"},
                {"km": 1000, "additionalPrice": 14.99},
                {"km": 1500, "additionalPrice": 49.99},
                {"km": 2000, "additionalPrice": 109.99},
            ],
            "insurance": _insurance(120),
            "additionalDriverPrice": 14,
        },
    },
    {
        "id": "renault-kangoo",
        "name": "Renault Kangoo Van",
        "brand_id": "renault",
        "category": "utilitaire",
        "subscription_options": {
            "engagement": [
                {"months": 24, "monthlyPrice": 390},
                {"months": 12, "monthlyPrice": 410},
            ],
            "mileage": [{"km": 1500, "additionalPrice": 0, "label": "Included"}],
            "insurance": [],
            "additionalDriverPrice": 0,
        },
    },
    {
        # listed but not yet priced: every option group is absent
        "id": "dacia-spring",
        "name": "Dacia Spring",
        "brand_id": "dacia",
        "category": "compact",
        "subscription_options": None,
    },
]

CITIES = [
    ("Casablanca", 1.00),
    ("Rabat", 1.03),
    ("Marrakech", 1.07),
    ("Tanger", 1.05),
    ("Fès", 0.97),
    ("Agadir", 1.04),
    ("Meknès", 0.96),
    ("Oujda", 0.95),
]


async def seed() -> None:
    async with async_session_factory() as session:
        result = await session.execute(text("SELECT COUNT(*) FROM vehicles"))
        count = result.scalar()
        if count and count > 0:
            print(f"Database already has {count} vehicles -- skipping seed.")
            return

        for u in USERS:
            session.add(UserModel(**u))
        print(f"  Created {len(USERS)} users")

        for v in VEHICLES:
            session.add(VehicleModel(available=True, **v))
        print(f"  Created {len(VEHICLES)} vehicles")

        for name, factor in CITIES:
            session.add(CityModel(id=normalize_city(name), name=name, factor=factor))
        print(f"  Created {len(CITIES)} cities")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())

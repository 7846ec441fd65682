from __future__ import annotations

import json
from uuid import uuid4

from sqlalchemy import text


# Prices are per person per cycle, in paise.
DEFAULT_PLANS = (
    ("veg", "basic", "Veg Basic", 250000, 30, ["1 meal a day", "Rotating weekly menu"]),
    ("veg", "premium", "Veg Premium", 400000, 30, ["2 meals a day", "Seasonal specials"]),
    ("veg", "family", "Veg Family", 650000, 30, ["2 meals a day", "Family portions"]),
    ("veg_with_egg", "basic", "Egg Basic", 280000, 30, ["1 meal a day", "Egg curry twice a week"]),
    ("veg_with_egg", "premium", "Egg Premium", 430000, 30, ["2 meals a day", "Egg dishes on demand"]),
    ("veg_with_egg", "family", "Egg Family", 690000, 30, ["2 meals a day", "Family portions"]),
    ("nonveg", "basic", "Non-Veg Basic", 320000, 30, ["1 meal a day", "Chicken twice a week"]),
    ("nonveg", "premium", "Non-Veg Premium", 480000, 30, ["2 meals a day", "Fish and mutton specials"]),
    ("nonveg", "family", "Non-Veg Family", 750000, 30, ["2 meals a day", "Family portions"]),
)


def seed_subscription_plans(engine) -> None:
    with engine.begin() as conn:
        for dietary_preference, plan_type, name, price, duration, features in DEFAULT_PLANS:
            conn.execute(
                text(
                    """
                    INSERT INTO public.subscription_plans (
                        id, name, plan_type, dietary_preference, price, duration, features, is_active
                    )
                    VALUES (
                        :id, :name, :plan_type, :dietary_preference, :price, :duration,
                        CAST(:features AS jsonb), true
                    )
                    ON CONFLICT (dietary_preference, plan_type) DO UPDATE
                    SET name = EXCLUDED.name,
                        price = EXCLUDED.price,
                        duration = EXCLUDED.duration,
                        features = EXCLUDED.features,
                        is_active = EXCLUDED.is_active
                    """
                ),
                {
                    "id": str(uuid4()),
                    "name": name,
                    "plan_type": plan_type,
                    "dietary_preference": dietary_preference,
                    "price": price,
                    "duration": duration,
                    "features": json.dumps(features),
                },
            )


def main() -> None:
    from mealsub.infrastructure.db.engine import Base, get_engine
    from mealsub.infrastructure.db.models import subscriptions  # noqa: F401
    from mealsub.shared.config import get_settings

    settings = get_settings()
    if not settings.postgres_dsn:
        raise SystemExit("POSTGRES_DSN is required.")
    engine = get_engine(settings.postgres_dsn)
    Base.metadata.create_all(engine)
    seed_subscription_plans(engine)


if __name__ == "__main__":
    main()

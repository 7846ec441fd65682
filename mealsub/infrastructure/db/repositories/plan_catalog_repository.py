from __future__ import annotations

from sqlalchemy import text

from mealsub.application.ports.plan_catalog_port import PlanCatalogPort
from mealsub.domain.entities.plan import Plan
from mealsub.infrastructure.db.mappers.subscriptions_mapper import map_row_to_plan


class SqlPlanCatalogRepository(PlanCatalogPort):
    def __init__(self, engine):
        self._engine = engine

    def list_plans(self, *, dietary_preference: str) -> list[Plan]:
        sql = """
            SELECT id, name, plan_type, dietary_preference, price, duration, features, is_active
            FROM public.subscription_plans
            WHERE dietary_preference = :dietary_preference
              AND is_active = true
            ORDER BY price ASC, name ASC
        """
        with self._engine.connect() as conn:
            rows = conn.execute(text(sql), {"dietary_preference": dietary_preference}).mappings().all()
        return [map_row_to_plan(row) for row in rows]

    def list_all_plans(self) -> list[Plan]:
        sql = """
            SELECT id, name, plan_type, dietary_preference, price, duration, features, is_active
            FROM public.subscription_plans
            WHERE is_active = true
            ORDER BY dietary_preference ASC, price ASC, name ASC
        """
        with self._engine.connect() as conn:
            rows = conn.execute(text(sql)).mappings().all()
        return [map_row_to_plan(row) for row in rows]

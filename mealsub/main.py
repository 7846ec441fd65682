from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mealsub.api.routers import admin_subscriptions, plans, subscriptions
from mealsub.shared.config import get_settings


settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = FastAPI(title="Meal Subscription API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_allow_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(plans.router)
app.include_router(subscriptions.router)
app.include_router(admin_subscriptions.router)


@app.get("/health")
def health():
    return {"status": "ok"}

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends, Header, HTTPException

from mealsub.application.locks import SettlementLocks
from mealsub.application.use_cases.extend_subscription import ExtendSubscriptionUseCase
from mealsub.application.use_cases.list_subscription_plans import ListSubscriptionPlansUseCase
from mealsub.application.use_cases.list_subscriptions import ListSubscriptionsUseCase
from mealsub.application.use_cases.quote_subscription_change import QuoteSubscriptionChangeUseCase
from mealsub.application.use_cases.settle_subscription_change import SettleSubscriptionChangeUseCase
from mealsub.application.use_cases.update_subscription_status import UpdateSubscriptionStatusUseCase
from mealsub.domain.entities.user import User, is_staff
from mealsub.infrastructure.clients.stripe_payment_client import StripePaymentCaptureClient
from mealsub.infrastructure.db.engine import get_engine
from mealsub.infrastructure.db.repositories.accounts_repository import SqlAccountsRepository
from mealsub.infrastructure.db.repositories.plan_catalog_repository import SqlPlanCatalogRepository
from mealsub.infrastructure.db.repositories.subscription_repository import SqlSubscriptionRepository
from mealsub.infrastructure.security.token_service import JwtTokenService
from mealsub.shared.config import get_settings


# One registry per process; settlements of the same customer are serialized through it.
_settlement_locks = SettlementLocks()


def _get_db_engine():
    settings = get_settings()
    if not settings.postgres_dsn:
        raise HTTPException(status_code=500, detail="POSTGRES_DSN is required.")
    return get_engine(settings.postgres_dsn)


def _get_accounts_repository() -> SqlAccountsRepository:
    return SqlAccountsRepository(_get_db_engine())


def _get_plan_catalog_repository() -> SqlPlanCatalogRepository:
    return SqlPlanCatalogRepository(_get_db_engine())


def _get_subscription_repository() -> SqlSubscriptionRepository:
    return SqlSubscriptionRepository(_get_db_engine())


@lru_cache(maxsize=1)
def _get_token_service() -> JwtTokenService:
    settings = get_settings()
    if not settings.jwt_secret:
        raise HTTPException(status_code=500, detail="JWT_SECRET is required.")
    return JwtTokenService(
        jwt_secret=settings.jwt_secret,
        leeway_seconds=settings.jwt_leeway_seconds,
    )


@lru_cache(maxsize=1)
def _get_payment_capture_client() -> StripePaymentCaptureClient:
    settings = get_settings()
    if not settings.stripe_secret_key:
        raise HTTPException(status_code=500, detail="STRIPE_SECRET_KEY is required.")
    return StripePaymentCaptureClient(
        secret_key=settings.stripe_secret_key,
        currency=settings.payment_currency,
        poll_interval_seconds=settings.payment_poll_interval_seconds,
    )


def get_settlement_locks() -> SettlementLocks:
    return _settlement_locks


def get_list_subscription_plans_use_case() -> ListSubscriptionPlansUseCase:
    return ListSubscriptionPlansUseCase(plan_catalog_port=_get_plan_catalog_repository())


def get_list_subscriptions_use_case() -> ListSubscriptionsUseCase:
    return ListSubscriptionsUseCase(
        subscription_store_port=_get_subscription_repository(),
        business_tz=get_settings().business_tz,
    )


def get_quote_subscription_change_use_case() -> QuoteSubscriptionChangeUseCase:
    return QuoteSubscriptionChangeUseCase(
        plan_catalog_port=_get_plan_catalog_repository(),
        subscription_store_port=_get_subscription_repository(),
        business_tz=get_settings().business_tz,
    )


def get_settle_subscription_change_use_case(
    locks: SettlementLocks = Depends(get_settlement_locks),
) -> SettleSubscriptionChangeUseCase:
    settings = get_settings()
    subscription_repository = _get_subscription_repository()
    return SettleSubscriptionChangeUseCase(
        plan_catalog_port=_get_plan_catalog_repository(),
        subscription_store_port=subscription_repository,
        address_port=_get_accounts_repository(),
        payment_capture_port=_get_payment_capture_client(),
        incident_port=subscription_repository,
        locks=locks,
        business_tz=settings.business_tz,
        payment_timeout_seconds=settings.payment_capture_timeout_seconds,
    )


def get_update_subscription_status_use_case() -> UpdateSubscriptionStatusUseCase:
    return UpdateSubscriptionStatusUseCase(subscription_store_port=_get_subscription_repository())


def get_extend_subscription_use_case() -> ExtendSubscriptionUseCase:
    return ExtendSubscriptionUseCase(subscription_store_port=_get_subscription_repository())


def get_current_user(
    authorization: str = Header(...),
) -> User:
    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid authorization header.")
    token = authorization.replace("Bearer ", "", 1).strip()
    if not token:
        raise HTTPException(status_code=401, detail="Missing access token.")

    token_service = _get_token_service()
    user_port = _get_accounts_repository()

    try:
        payload = token_service.decode_access_token(token=token)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    user = user_port.get_user_by_id(user_id=payload.user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found.")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="User is inactive.")
    return user


def require_staff(user: User = Depends(get_current_user)) -> User:
    if not is_staff(user):
        raise HTTPException(status_code=403, detail="Manager or admin role is required.")
    return user

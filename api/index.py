from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from mangum import Mangum
from typing import Optional
import structlog
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from accounts.api import router as accounts_router
from accounts.service import AccountService
from accounts.storage import InMemoryStorage
from billing.api import router as billing_router
from billing.gateway import GatewayFactory, GatewayProvider, build_gateway
from billing.orders import OrderService
from billing.subscriptions import SubscriptionService
from billing.webhooks import WebhookIngest
from core.clock import Clock, local_now
from core.config import Settings, get_settings
from core.errors import DomainError
from core.logging import configure_logging
from helpdesk.api import router as helpdesk_router
from helpdesk.service import HelpdeskService
from promotions.api import router as promotions_router
from promotions.service import PromotionService
from referrals.api import router as referrals_router
from referrals.service import ReferralService
from wallet.api import router as wallet_router
from wallet.service import WalletService

logger = structlog.get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    storage: Optional[InMemoryStorage] = None,
    gateway_factory: GatewayFactory = build_gateway,
    clock: Clock = local_now,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)
    gateway = GatewayProvider(settings, factory=gateway_factory)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("app_starting", project=settings.PROJECT_NAME)
        yield
        gateway.close()
        logger.info("app_stopped")

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Listings marketplace backend: payment orders, recurring subscriptions, gold wallet and referrals",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    accounts = AccountService(storage=storage, clock=clock)
    subscriptions = SubscriptionService(accounts, gateway, clock=clock)

    app.state.settings = settings
    app.state.accounts = accounts
    app.state.orders = OrderService(accounts, gateway, clock=clock)
    app.state.subscriptions = subscriptions
    app.state.webhooks = WebhookIngest(subscriptions, settings)
    app.state.wallet = WalletService(accounts, clock=clock)
    app.state.referrals = ReferralService(accounts, clock=clock)
    app.state.promotions = PromotionService(accounts.storage, clock=clock)
    app.state.helpdesk = HelpdeskService(accounts.storage, clock=clock)

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        body = {"success": False, "error": exc.kind, "message": exc.message}
        if exc.data:
            body["data"] = exc.data
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled_error", path=request.url.path, method=request.method)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "internal_error", "message": "Internal server error"},
        )

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "healthy", "service": "listings-ledger"}

    app.include_router(accounts_router)
    app.include_router(billing_router)
    app.include_router(wallet_router)
    app.include_router(referrals_router)
    app.include_router(promotions_router)
    app.include_router(helpdesk_router)
    return app


app = create_app()

handler = Mangum(app)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

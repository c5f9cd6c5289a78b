import logging
from dataclasses import dataclass, field
from datetime import timedelta

from costagolf.config import Settings, settings
from costagolf.providers.base import TeeTimeProvider
from costagolf.providers.email_base import EmailProvider
from costagolf.providers.golfmanager_provider import GolfmanagerProvider
from costagolf.providers.resend_provider import ResendEmailProvider
from costagolf.providers.teeone_provider import TeeOneProvider
from costagolf.providers.zest_provider import ZestProvider
from costagolf.services.booking_service import BookingService
from costagolf.services.checkout_service import (
    CheckoutService,
    MockPaymentProcessor,
    PaymentProcessor,
    StripePaymentProcessor,
)
from costagolf.services.database_service import DatabaseService, database_service
from costagolf.services.hold_store import HoldStore
from costagolf.services.notification_service import NotificationService
from costagolf.services.price_cache import PriceCache
from costagolf.services.provider_sync_service import ProviderSyncService
from costagolf.services.slot_search_service import SlotSearchService
from costagolf.services.sweeper import PeriodicSweeper

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Process-wide service graph, built once at startup and stored on app.state."""

    price_cache: PriceCache
    hold_store: HoldStore
    db: DatabaseService
    providers: dict[str, TeeTimeProvider]
    slot_search_service: SlotSearchService
    booking_service: BookingService
    checkout_service: CheckoutService
    sweepers: list[PeriodicSweeper] = field(default_factory=list)

    def run_sweeps(self) -> dict[str, int]:
        """Run every periodic sweep once, on demand."""
        expired_holds = self.hold_store.sweep_expired()
        purged_holds = self.hold_store.purge_terminal()
        expired_prices = self.price_cache.sweep()
        return {
            "expiredHolds": expired_holds,
            "purgedHolds": purged_holds,
            "expiredPrices": expired_prices,
        }

    def start(self) -> None:
        for sweeper in self.sweepers:
            sweeper.start()

    async def shutdown(self) -> None:
        for sweeper in self.sweepers:
            await sweeper.stop()
        await self.booking_service.wait_for_background_tasks()
        for provider in self.providers.values():
            await provider.close()


def build_services(
    config: Settings = settings,
    db: DatabaseService | None = None,
    providers: dict[str, TeeTimeProvider] | None = None,
    email_provider: EmailProvider | None = None,
    payment_processor: PaymentProcessor | None = None,
    price_cache: PriceCache | None = None,
    hold_store: HoldStore | None = None,
) -> Services:
    db = db or database_service
    price_cache = price_cache or PriceCache(ttl=timedelta(minutes=config.price_ttl_minutes))
    hold_store = hold_store or HoldStore(
        hold_ttl=timedelta(minutes=config.hold_ttl_minutes),
        terminal_retention=timedelta(hours=config.terminal_hold_retention_hours),
    )

    if providers is None:
        providers = {
            "golfmanager": GolfmanagerProvider(rate_periods=db.get_rate_periods_by_course_id),
            "teeone": TeeOneProvider(),
            "zest": ZestProvider(),
        }

    if payment_processor is None:
        if config.stripe_secret_key:
            logger.info("Stripe configured - using StripePaymentProcessor")
            payment_processor = StripePaymentProcessor()
        else:
            logger.warning(
                "STRIPE_SECRET_KEY not configured - using MockPaymentProcessor. "
                "Webhook signatures are not verified in this mode."
            )
            payment_processor = MockPaymentProcessor()

    if email_provider is None:
        if not config.resend_api_key:
            logger.warning("RESEND_API_KEY not configured - confirmation emails are only logged.")
        email_provider = ResendEmailProvider()

    booking_service = BookingService(
        hold_store=hold_store,
        price_cache=price_cache,
        db=db,
        sync_service=ProviderSyncService(providers, db),
        notification_service=NotificationService(email_provider),
        public_base_url=config.public_base_url,
    )
    checkout_service = CheckoutService(
        price_cache=price_cache,
        hold_store=hold_store,
        db=db,
        booking_service=booking_service,
        payment_processor=payment_processor,
        checkout_hold_ttl=timedelta(minutes=config.checkout_hold_ttl_minutes),
    )

    return Services(
        price_cache=price_cache,
        hold_store=hold_store,
        db=db,
        providers=providers,
        slot_search_service=SlotSearchService(providers, price_cache, db),
        booking_service=booking_service,
        checkout_service=checkout_service,
        sweepers=[
            PeriodicSweeper("price cache", price_cache.sweep, config.price_sweep_interval_seconds),
            PeriodicSweeper("hold", hold_store.sweep, config.hold_sweep_interval_seconds),
        ],
    )

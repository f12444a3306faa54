from core.config import get_settings
from core.database import TableInitializer, build_engine, build_session_factory
from providers.stripe_gateway import build_checkout_gateway
from services.remote_store import ActionDispatcher, RemoteStore
from services.subscription_events import SubscriptionEventHandler

settings = get_settings()

engine = build_engine(settings.database_url)
table_initializer = TableInitializer(engine)
remote_store = RemoteStore(
    build_session_factory(engine),
    table_initializer,
    free_limit=settings.free_generation_limit,
    history_limit=settings.remote_history_limit,
    checkout_gateway=build_checkout_gateway(settings),
    app_base_url=settings.app_base_url,
)
action_dispatcher = ActionDispatcher(remote_store)
subscription_events = SubscriptionEventHandler(remote_store, settings.stripe_webhook_secret)


def get_action_dispatcher() -> ActionDispatcher:
    return action_dispatcher


def get_table_initializer() -> TableInitializer:
    return table_initializer


def get_subscription_events() -> SubscriptionEventHandler:
    return subscription_events

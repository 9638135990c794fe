import asyncio
import logging
from typing import Optional, Union

from pydantic import ValidationError

from zabibu_fresh import config
from zabibu_fresh.dependencies.rbac import (
    require_conversation_start,
    require_dashboard_read,
    require_permission,
    require_profile_write,
)
from zabibu_fresh.errors import NotFound, ValidationFailed, validation_failed_from
from zabibu_fresh.services.auth.auth import AuthService
from zabibu_fresh.services.auth.context import ProfileContext
from zabibu_fresh.services.messages.chat_session import ChatSession
from zabibu_fresh.services.messages.conversations import ConversationService
from zabibu_fresh.services.messages.messages import MessageStore
from zabibu_fresh.services.products.products import ProductService
from zabibu_fresh.services.products.schemas import ProductResponse
from zabibu_fresh.services.storage.storage import StorageService
from zabibu_fresh.services.users.schemas import DashboardStats, UserProfileUpdate, UserProfileResponse
from zabibu_fresh.services.users.users import ProfileService
from zabibu_fresh.utils.notifications import NotificationCenter

logger = logging.getLogger(__name__)


class ZabibuFresh:
    """
    Client core for the Zabibu Fresh marketplace.
    Wires every service to one Supabase client and one shared ProfileContext.
    """

    def __init__(self, client):
        self.client = client
        self.notifications = NotificationCenter()

        self.profiles = ProfileService(client)
        self.context = ProfileContext(self.profiles)
        self.auth = AuthService(client, self.profiles, self.context)
        self.storage = StorageService(client)
        self.products = ProductService(client, self.context, self.storage)
        self.messages = MessageStore(client)
        self.conversations = ConversationService(self.messages, self.context)

        self._sessions = set()

    async def start(self) -> "ZabibuFresh":
        self.context.attach(self.client.auth)
        await self.context.initialize()
        logger.info(f"Zabibu Fresh started ({config.ENVIRONMENT}), signed in: {self.context.is_authenticated}")
        return self

    async def stop(self):
        sessions, self._sessions = list(self._sessions), set()
        try:
            for session in sessions:
                await session.close()
        finally:
            self.context.detach()
        logger.info("Zabibu Fresh stopped")

    async def __aenter__(self):
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()
        return False

    @require_permission("messages", "write", action="open chat")
    async def open_chat(self, counterparty_id: str, product_id: str) -> ChatSession:
        """Open a live chat with counterparty_id about product_id"""
        viewer_id = self.context.require_user(action="open chat")
        session = ChatSession(self.messages, viewer_id, counterparty_id, product_id)
        await session.open()

        self._sessions = {s for s in self._sessions if s.is_open}
        self._sessions.add(session)
        return session

    @require_conversation_start
    async def contact_seller(self, product: Union[ProductResponse, str]) -> ChatSession:
        if not isinstance(product, ProductResponse):
            product_id = product
            product = await self.products.get_product(product_id)
            if product is None:
                raise NotFound("Product not found", action="contact seller")

        if product.owner_id is None:
            raise NotFound("Seller not found for this product", action="contact seller")
        if product.owner_id == self.context.user_id:
            raise ValidationFailed("You cannot contact yourself about your own product", action="contact seller")

        return await self.open_chat(product.owner_id, product.id)

    @require_profile_write
    async def update_my_profile(self, full_name: Optional[str] = None,
                                phone: Optional[str] = None) -> Optional[UserProfileResponse]:
        user_id = self.context.require_user(action="update profile")
        try:
            profile_data = UserProfileUpdate(full_name=full_name, phone=phone)
        except ValidationError as e:
            raise validation_failed_from(e, action="update profile")

        profile = await self.profiles.update_profile(user_id, profile_data)
        if profile is not None:
            await self.context.refresh_profile()
        return profile

    @require_dashboard_read
    async def dashboard_stats(self) -> DashboardStats:
        """Counters for the home screen of the signed-in user's role"""
        user_id = self.context.require_user(action="load dashboard")
        role = self.context.user_role
        if self.context.is_seller:
            total_products, total_messages = await asyncio.gather(
                self.products.count_seller_products(user_id),
                self.messages.count_received(user_id),
            )
            return DashboardStats(role=role, total_products=total_products, total_messages=total_messages)

        return DashboardStats(role=role, total_messages=await self.messages.count_sent(user_id))


async def create_app() -> ZabibuFresh:
    config.configure_logging()
    client = await config.get_supabase_client()
    return await ZabibuFresh(client).start()

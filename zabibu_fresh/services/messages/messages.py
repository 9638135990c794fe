import logging
from datetime import datetime, timezone
from typing import Callable, List

from zabibu_fresh.errors import ZabibuError, RemoteFetchFailed, SendFailed
from zabibu_fresh.services.messages.schemas import MessageCreate, MessageResponse
from zabibu_fresh.utils.response_helpers import first_row, response_count, safe_model_validate_list

logger = logging.getLogger(__name__)

MESSAGE_TABLE = "Message"
THREAD_COLUMNS = "id, senderId, receiverId, productId, content, timestamp"
INBOX_COLUMNS = (
    "id, senderId, receiverId, productId, content, timestamp, "
    "product:Product(id, title, image), "
    "sender:User!Message_senderId_fkey(id, fullName), "
    "receiver:User!Message_receiverId_fkey(id, fullName)"
)


def pair_filter(user_a: str, user_b: str) -> str:
    """PostgREST or-filter matching messages between two users in either direction"""
    return (
        f"and(senderId.eq.{user_a},receiverId.eq.{user_b}),"
        f"and(senderId.eq.{user_b},receiverId.eq.{user_a})"
    )


def participant_filter(user_id: str) -> str:
    return f"senderId.eq.{user_id},receiverId.eq.{user_id}"


class MessageStore:
    """Reads, inserts and subscribes to rows of the Message table"""

    def __init__(self, client):
        self.client = client

    async def fetch_user_messages(self, user_id: str) -> List[MessageResponse]:
        """Every message the user sent or received, newest first, with product and participants embedded"""
        try:
            response = await (
                self.client.table(MESSAGE_TABLE)
                .select(INBOX_COLUMNS)
                .or_(participant_filter(user_id))
                .order("timestamp", desc=True)
                .execute()
            )
            return safe_model_validate_list(MessageResponse, response.data)
        except ZabibuError:
            raise
        except Exception as e:
            logger.error(f"Error fetching messages for {user_id}: {str(e)}")
            raise RemoteFetchFailed("Could not fetch conversations", action="load conversations") from e

    async def fetch_thread(self, viewer_id: str, counterparty_id: str, product_id: str) -> List[MessageResponse]:
        """Messages between two users about one product, oldest first"""
        try:
            response = await (
                self.client.table(MESSAGE_TABLE)
                .select(THREAD_COLUMNS)
                .eq("productId", product_id)
                .or_(pair_filter(viewer_id, counterparty_id))
                .order("timestamp", desc=False)
                .execute()
            )
            return safe_model_validate_list(MessageResponse, response.data)
        except ZabibuError:
            raise
        except Exception as e:
            logger.error(f"Error fetching messages for product {product_id}: {str(e)}")
            raise RemoteFetchFailed("Could not load messages", action="load messages") from e

    async def insert_message(self, sender_id: str, receiver_id: str, product_id: str, content: str,
                             timestamp: datetime = None) -> MessageResponse:
        message_data = MessageCreate(
            sender_id=sender_id,
            receiver_id=receiver_id,
            product_id=product_id,
            content=content,
            timestamp=timestamp or datetime.now(timezone.utc),
        )
        try:
            response = await self.client.table(MESSAGE_TABLE).insert(message_data.to_row()).execute()
            row = first_row(response)
            if row is None:
                raise SendFailed("Message was not returned after insert", action="send message")
            return MessageResponse.model_validate(row)
        except ZabibuError:
            raise
        except Exception as e:
            logger.error(f"Error sending message: {str(e)}")
            raise SendFailed("Could not send message", action="send message") from e

    async def subscribe(self, product_id: str, callback: Callable, channel_name: str = None):
        """
        Listen for new messages about a product. Realtime accepts a single filter,
        so callers still check the participant pair.
        """
        channel = self.client.channel(channel_name or f"chat_{product_id}")
        channel.on_postgres_changes(
            "INSERT",
            callback=callback,
            schema="public",
            table=MESSAGE_TABLE,
            filter=f"productId=eq.{product_id}",
        )
        try:
            await channel.subscribe()
        except Exception as e:
            logger.error(f"Error subscribing to messages for product {product_id}: {str(e)}")
            await self.unsubscribe(channel)
            raise RemoteFetchFailed("Could not open live chat", action="open chat") from e
        return channel

    async def count_received(self, user_id: str) -> int:
        return await self._count("receiverId", user_id)

    async def count_sent(self, user_id: str) -> int:
        return await self._count("senderId", user_id)

    async def _count(self, column: str, user_id: str) -> int:
        try:
            response = await (
                self.client.table(MESSAGE_TABLE)
                .select("id", count="exact")
                .eq(column, user_id)
                .execute()
            )
            return response_count(response)
        except Exception as e:
            logger.error(f"Error counting messages where {column} is {user_id}: {str(e)}")
            raise RemoteFetchFailed("Could not load dashboard", action="load dashboard") from e

    async def unsubscribe(self, channel):
        try:
            await self.client.remove_channel(channel)
        except Exception as e:
            logger.error(f"Error removing realtime channel: {str(e)}")

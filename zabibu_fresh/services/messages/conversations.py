"""
Inbox view: groups a user's messages into (counterparty, product) threads.

The grouping is a pure function over rows so it can be tested without a
backend; ``ConversationService`` only adds the fetch around it.
"""
import logging
from typing import Dict, Iterable, List

from zabibu_fresh.dependencies.rbac import require_permission
from zabibu_fresh.services.messages.messages import MessageStore
from zabibu_fresh.services.messages.schemas import ConversationSummary, MessageResponse

logger = logging.getLogger(__name__)


def _recency(message: MessageResponse) -> tuple:
    # Equal timestamps fall back to the larger id
    return (message.timestamp, message.id)


def aggregate_conversations(messages: Iterable, viewer_id: str) -> List[ConversationSummary]:
    """
    One summary per (counterparty, product) pair, previewing the most recent
    message, newest conversation first.
    """
    latest: Dict[tuple, MessageResponse] = {}
    counts: Dict[tuple, int] = {}

    for message in messages:
        if not isinstance(message, MessageResponse):
            message = MessageResponse.model_validate(message)
        if viewer_id not in (message.sender_id, message.receiver_id):
            logger.debug(f"Skipping message {message.id} not involving {viewer_id}")
            continue

        key = (message.counterparty_of(viewer_id), message.product_id)
        counts[key] = counts.get(key, 0) + 1
        current = latest.get(key)
        if current is None or _recency(message) > _recency(current):
            latest[key] = message

    summaries = [
        _summarize(message, key, counts[key], viewer_id)
        for key, message in latest.items()
    ]
    summaries.sort(key=lambda s: (s.last_message_at, s.last_message_id), reverse=True)
    return summaries


def _summarize(message: MessageResponse, key: tuple, count: int, viewer_id: str) -> ConversationSummary:
    counterparty_id, product_id = key
    counterparty = message.receiver if message.sender_id == viewer_id else message.sender
    return ConversationSummary(
        counterparty_id=counterparty_id,
        counterparty_name=counterparty.full_name if counterparty else None,
        product_id=product_id,
        product_title=message.product.title if message.product else None,
        product_image=message.product.image if message.product else None,
        last_message=message.content,
        last_message_at=message.timestamp,
        last_message_id=message.id,
        last_sender_id=message.sender_id,
        message_count=count,
    )


class ConversationService:

    def __init__(self, store: MessageStore, context):
        self.store = store
        self.context = context

    @require_permission("conversations", "read", action="load conversations")
    async def list_conversations(self) -> List[ConversationSummary]:
        """Errors propagate as RemoteFetchFailed; an empty list only ever means no messages"""
        viewer_id = self.context.require_user(action="load conversations")
        messages = await self.store.fetch_user_messages(viewer_id)
        conversations = aggregate_conversations(messages, viewer_id)
        logger.info(f"Loaded {len(conversations)} conversations from {len(messages)} messages for {viewer_id}")
        return conversations

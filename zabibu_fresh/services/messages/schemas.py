from typing import Optional
from datetime import datetime

from zabibu_fresh.services.users.schemas import UserSummary
from zabibu_fresh.utils.response_helpers import RowModel


class ProductSummary(RowModel):
    id: Optional[str] = None
    title: Optional[str] = None
    image: Optional[str] = None


class MessageCreate(RowModel):
    sender_id: str
    receiver_id: str
    product_id: str
    content: str
    timestamp: datetime


class MessageResponse(RowModel):
    id: str
    sender_id: str
    receiver_id: str
    product_id: str
    content: str
    timestamp: datetime
    sender: Optional[UserSummary] = None
    receiver: Optional[UserSummary] = None
    product: Optional[ProductSummary] = None

    def counterparty_of(self, viewer_id: str) -> str:
        return self.receiver_id if self.sender_id == viewer_id else self.sender_id

    def involves(self, user_a: str, user_b: str) -> bool:
        return {self.sender_id, self.receiver_id} == {user_a, user_b}


class ConversationSummary(RowModel):
    """One (counterparty, product) thread as seen by the viewer"""
    counterparty_id: str
    counterparty_name: Optional[str] = None
    product_id: str
    product_title: Optional[str] = None
    product_image: Optional[str] = None
    last_message: str
    last_message_at: datetime
    last_message_id: str
    last_sender_id: str
    message_count: int = 1
    # Not tracked by the backend yet
    unread_count: Optional[int] = None

    @property
    def key(self) -> tuple:
        return (self.counterparty_id, self.product_id)

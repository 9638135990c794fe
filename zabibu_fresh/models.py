from sqlalchemy import (
    String,
    Text,
    DateTime,
    Integer,
    Numeric,
    CheckConstraint,
    PrimaryKeyConstraint,
    Index,
    Enum,
    text,
    ForeignKey,
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.ext.declarative import declarative_base
from typing import Optional, List
from decimal import Decimal
import enum
import uuid

Base = declarative_base()


class Role(str, enum.Enum):
    seller = "seller"
    buyer = "buyer"


class AuthUser(Base):
    """
    Minimal mirror of Supabase auth.users so the profile table can reference it.
    The auth schema itself is owned by Supabase and skipped by migrations.
    """
    __tablename__ = "users"
    __table_args__ = (
        PrimaryKeyConstraint("id", name="users_pkey"),
        {"schema": "auth"},
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    phone: Mapped[Optional[str]] = mapped_column(Text)
    raw_user_meta_data: Mapped[Optional[dict]] = mapped_column(JSONB)
    created_at: Mapped[Optional[DateTime]] = mapped_column(DateTime(True))

    profile: Mapped[Optional["User"]] = relationship(
        "User",
        back_populates="auth_user",
        uselist=False,
        cascade="all, delete-orphan"
    )


class User(Base):
    """
    Application profile, one row per authenticated identity, keyed by the auth user id
    """
    __tablename__ = "User"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("auth.users.id", ondelete="CASCADE"),
        primary_key=True
    )
    fullName: Mapped[str] = mapped_column(String(150), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    role: Mapped[Role] = mapped_column(
        Enum(Role, name="Role", values_callable=lambda roles: [r.value for r in roles]),
        nullable=False
    )
    createdAt: Mapped[DateTime] = mapped_column(
        DateTime(True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )

    auth_user: Mapped["AuthUser"] = relationship("AuthUser", back_populates="profile")
    products: Mapped[List["Product"]] = relationship(
        "Product",
        back_populates="seller",
        cascade="all, delete-orphan"
    )
    sent_messages: Mapped[List["Message"]] = relationship(
        "Message",
        foreign_keys="Message.senderId",
        back_populates="sender"
    )
    received_messages: Mapped[List["Message"]] = relationship(
        "Message",
        foreign_keys="Message.receiverId",
        back_populates="receiver"
    )


class Product(Base):
    __tablename__ = "Product"
    __table_args__ = (
        CheckConstraint('price >= 0', name="product_price_non_negative_check"),
        CheckConstraint('quantity >= 0', name="product_quantity_non_negative_check"),
        Index("product_seller_created_idx", "sellerId", "createdAt"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()")
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    # Public URL of the object in the product-images bucket
    image: Mapped[Optional[str]] = mapped_column(String(500))
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    location: Mapped[str] = mapped_column(String(200), nullable=False)
    sellerId: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("User.id", ondelete="CASCADE"),
        nullable=False
    )
    createdAt: Mapped[DateTime] = mapped_column(
        DateTime(True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )

    seller: Mapped["User"] = relationship("User", back_populates="products")
    messages: Mapped[List["Message"]] = relationship(
        "Message",
        back_populates="product",
        cascade="all, delete-orphan"
    )


class Message(Base):
    """
    Immutable chat message; a conversation is every message of a user pair about one product
    """
    __tablename__ = "Message"
    __table_args__ = (
        CheckConstraint('"senderId" <> "receiverId"', name="message_distinct_participants_check"),
        CheckConstraint("char_length(content) BETWEEN 1 AND 500", name="message_content_length_check"),
        Index("message_product_timestamp_idx", "productId", "timestamp"),
        Index("message_sender_idx", "senderId"),
        Index("message_receiver_idx", "receiverId"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()")
    )
    senderId: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("User.id", ondelete="CASCADE", name="Message_senderId_fkey"),
        nullable=False
    )
    receiverId: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("User.id", ondelete="CASCADE", name="Message_receiverId_fkey"),
        nullable=False
    )
    productId: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("Product.id", ondelete="CASCADE", name="Message_productId_fkey"),
        nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[DateTime] = mapped_column(
        DateTime(True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )

    sender: Mapped["User"] = relationship("User", foreign_keys=[senderId], back_populates="sent_messages")
    receiver: Mapped["User"] = relationship("User", foreign_keys=[receiverId], back_populates="received_messages")
    product: Mapped["Product"] = relationship("Product", back_populates="messages")

"""Create profile, product and message tables with storage bucket and realtime

Revision ID: 0001_create_marketplace_tables
Revises:
Create Date: 2025-02-10

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = '0001_create_marketplace_tables'
down_revision = None
branch_labels = None
depends_on = None


role_enum = postgresql.ENUM('seller', 'buyer', name='Role', create_type=False)


def upgrade():
    role_enum.create(op.get_bind(), checkfirst=True)

    op.create_table('User',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('fullName', sa.String(length=150), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('role', role_enum, nullable=False),
        sa.Column('createdAt', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.ForeignKeyConstraint(['id'], ['auth.users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_User_phone', 'User', ['phone'], unique=True)

    op.create_table('Product',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('image', sa.String(length=500), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('location', sa.String(length=200), nullable=False),
        sa.Column('sellerId', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('createdAt', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.CheckConstraint('price >= 0', name='product_price_non_negative_check'),
        sa.CheckConstraint('quantity >= 0', name='product_quantity_non_negative_check'),
        sa.ForeignKeyConstraint(['sellerId'], ['User.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('product_seller_created_idx', 'Product', ['sellerId', 'createdAt'])

    op.create_table('Message',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('senderId', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('receiverId', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('productId', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.CheckConstraint('"senderId" <> "receiverId"', name='message_distinct_participants_check'),
        sa.CheckConstraint('char_length(content) BETWEEN 1 AND 500', name='message_content_length_check'),
        sa.ForeignKeyConstraint(['senderId'], ['User.id'], name='Message_senderId_fkey', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['receiverId'], ['User.id'], name='Message_receiverId_fkey', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['productId'], ['Product.id'], name='Message_productId_fkey', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('message_product_timestamp_idx', 'Message', ['productId', 'timestamp'])
    op.create_index('message_sender_idx', 'Message', ['senderId'])
    op.create_index('message_receiver_idx', 'Message', ['receiverId'])

    # Profile row from the sign-up metadata; the client creates it itself if this misses
    op.execute("""
        CREATE OR REPLACE FUNCTION public.handle_new_user()
        RETURNS trigger
        LANGUAGE plpgsql
        SECURITY DEFINER SET search_path = public
        AS $$
        BEGIN
            IF NEW.raw_user_meta_data ->> 'role' IN ('seller', 'buyer') THEN
                INSERT INTO public."User" (id, "fullName", phone, role)
                VALUES (
                    NEW.id,
                    COALESCE(NEW.raw_user_meta_data ->> 'full_name', ''),
                    COALESCE(NEW.raw_user_meta_data ->> 'phone', NEW.phone),
                    (NEW.raw_user_meta_data ->> 'role')::public."Role"
                )
                ON CONFLICT (id) DO NOTHING;
            END IF;
            RETURN NEW;
        END;
        $$;
    """)
    op.execute("""
        CREATE TRIGGER on_auth_user_created
        AFTER INSERT ON auth.users
        FOR EACH ROW EXECUTE FUNCTION public.handle_new_user();
    """)

    op.execute("""
        INSERT INTO storage.buckets (id, name, public, file_size_limit, allowed_mime_types)
        VALUES ('product-images', 'product-images', true, 10485760,
                ARRAY['image/png', 'image/jpeg', 'image/webp'])
        ON CONFLICT (id) DO NOTHING;
    """)

    op.execute('ALTER PUBLICATION supabase_realtime ADD TABLE public."Message";')


def downgrade():
    op.execute('ALTER PUBLICATION supabase_realtime DROP TABLE public."Message";')
    op.execute("DROP TRIGGER IF EXISTS on_auth_user_created ON auth.users;")
    op.execute("DROP FUNCTION IF EXISTS public.handle_new_user();")

    op.drop_index('message_receiver_idx', table_name='Message')
    op.drop_index('message_sender_idx', table_name='Message')
    op.drop_index('message_product_timestamp_idx', table_name='Message')
    op.drop_table('Message')
    op.drop_index('product_seller_created_idx', table_name='Product')
    op.drop_table('Product')
    op.drop_index('ix_User_phone', table_name='User')
    op.drop_table('User')
    role_enum.drop(op.get_bind(), checkfirst=True)

from alembic import op
import sqlalchemy as sa

revision = "20261017150000"
down_revision = "20261017120000"

NOW = sa.text("(now() at time zone 'utc')")

def upgrade():
    op.add_column('users', sa.Column('phone_number', sa.String(20), nullable=True))
    op.add_column('users', sa.Column('national_code', sa.String(10), nullable=True))
    op.add_column('users', sa.Column('birth_date', sa.Date(), nullable=True))
    op.add_column('users', sa.Column('gender', sa.String(10), nullable=True))

    op.create_table(
        'wishlists',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=NOW),
    )
    op.create_table(
        'wishlist_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('wishlist_id', sa.Integer(), sa.ForeignKey('wishlists.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=NOW),
        sa.UniqueConstraint('wishlist_id', 'product_id', name='uq_wishlist_product'),
    )
    op.create_table(
        'addresses',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('title', sa.String(100), nullable=False, server_default='Home'),
        sa.Column('province', sa.String(100), nullable=False),
        sa.Column('city', sa.String(100), nullable=False),
        sa.Column('postal_code', sa.String(20), nullable=False),
        sa.Column('address', sa.Text(), nullable=False),
        sa.Column('recipient_name', sa.String(100), nullable=False),
        sa.Column('recipient_phone', sa.String(20), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=NOW),
    )

def downgrade():
    for t in ('addresses', 'wishlist_items', 'wishlists'):
        op.drop_table(t)
    for c in ('gender', 'birth_date', 'national_code', 'phone_number'):
        op.drop_column('users', c)

from alembic import op
import sqlalchemy as sa

revision = "20261017120000"
down_revision = None

NOW = sa.text("(now() at time zone 'utc')")

order_status = sa.Enum("PENDING", "PAID", "SHIPPED", "COMPLETED", "CANCELLED", "RETURNED", name="orderstatus")
payment_method = sa.Enum("ONLINE", "CASH_ON_DELIVERY", name="paymentmethod")
discount_type = sa.Enum("PERCENTAGE", "FIXED_AMOUNT", name="discounttype")
return_status = sa.Enum("PENDING", "APPROVED", "REJECTED", "COMPLETED", "REFUNDED", "CANCELLED", name="returnstatus")

def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=NOW),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=NOW),
    ]

def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True, index=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(50), nullable=False, server_default=''),
        sa.Column('last_name', sa.String(50), nullable=False, server_default=''),
        sa.Column('role', sa.String(32), nullable=False, server_default='customer'),
        *_timestamps(),
    )
    op.create_table(
        'refresh_tokens',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('jti', sa.String(64), nullable=False, unique=True),
        sa.Column('token_hash', sa.String(64), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('revoked', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=NOW),
    )
    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(120), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('image_url', sa.String(1024), nullable=False, server_default=''),
    )
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(240), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('discount_percent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sales_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('brand', sa.String(120), nullable=False, server_default=''),
        sa.Column('image_url', sa.String(1024), nullable=False, server_default=''),
        sa.Column('category_id', sa.Integer(), sa.ForeignKey('categories.id'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        *_timestamps(),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_nonnegative'),
    )
    op.create_table(
        'product_sizes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('size', sa.String(20), nullable=False),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.UniqueConstraint('product_id', 'size', name='uq_product_size'),
        sa.CheckConstraint('stock >= 0', name='ck_product_sizes_stock_nonnegative'),
    )
    op.create_table(
        'product_colors',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('color', sa.String(50), nullable=False),
        sa.Column('hex_code', sa.String(7), nullable=False, server_default=''),
        sa.UniqueConstraint('product_id', 'color', name='uq_product_color'),
    )
    op.create_table(
        'product_images',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('object_key', sa.String(255), nullable=False),
        sa.Column('url', sa.String(1024), nullable=False),
    )
    op.create_table(
        'carts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=NOW),
    )
    op.create_table(
        'cart_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('cart_id', sa.Integer(), sa.ForeignKey('carts.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('size', sa.String(20), nullable=True),
        sa.Column('color', sa.String(50), nullable=True),
    )
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_code', sa.String(8), nullable=False, unique=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('address', sa.Text(), nullable=False),
        sa.Column('status', order_status, nullable=False, server_default='PENDING'),
        sa.Column('payment_method', payment_method, nullable=False, server_default='ONLINE'),
        sa.Column('tracking_number', sa.String(64), nullable=True, index=True),
        sa.Column('shipping_method', sa.String(64), nullable=True),
        sa.Column('estimated_delivery', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('size', sa.String(20), nullable=True),
        sa.Column('color', sa.String(50), nullable=True),
    )
    op.create_table(
        'coupons',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(50), nullable=False, unique=True),
        sa.Column('discount_type', discount_type, nullable=False),
        sa.Column('value', sa.Numeric(12, 2), nullable=False),
        sa.Column('min_order', sa.Numeric(12, 2), nullable=True),
        sa.Column('max_discount', sa.Numeric(12, 2), nullable=True),
        sa.Column('usage_limit', sa.Integer(), nullable=True),
        sa.Column('used_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=NOW),
    )
    op.create_table(
        'user_coupons',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('coupon_id', sa.Integer(), sa.ForeignKey('coupons.id', ondelete='CASCADE'), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('used_at', sa.DateTime(), nullable=True),
    )
    op.create_table(
        'reviews',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('text', sa.Text(), nullable=False, server_default=''),
        sa.Column('is_approved', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('helpful_count', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'product_id', name='uq_review_user_product'),
    )
    op.create_table(
        'return_requests',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('status', return_status, nullable=False, server_default='PENDING'),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('refund_amount', sa.Numeric(12, 2), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        'return_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('return_request_id', sa.Integer(), sa.ForeignKey('return_requests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('order_item_id', sa.Integer(), sa.ForeignKey('order_items.id'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('return_reason', sa.String(200), nullable=False),
    )

def downgrade():
    for t in ('return_items', 'return_requests', 'reviews', 'user_coupons', 'coupons', 'order_items', 'orders',
              'cart_items', 'carts', 'product_images', 'product_colors', 'product_sizes', 'products',
              'categories', 'refresh_tokens', 'users'):
        op.drop_table(t)
    for e in (return_status, discount_type, payment_method, order_status):
        e.drop(op.get_bind(), checkfirst=True)

from lawlaw.extensions import db
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime
from sqlalchemy import CheckConstraint, UniqueConstraint
import enum
import json


class UserRole(enum.Enum):
    BUYER = 'buyer'
    SELLER = 'seller'
    ADMIN = 'admin'


class OrderStatus(enum.Enum):
    PENDING = 'pending'
    PROCESSING = 'processing'
    SHIPPED = 'shipped'
    DELIVERED = 'delivered'
    CANCELLED = 'cancelled'


class NotificationType(enum.Enum):
    ORDER_UPDATE = 'order_update'
    ADMIN_ACTION_REQUIRED = 'admin_action_required'
    CHAT = 'chat'
    SELLER_APPLICATION = 'seller_application'


class ApplicationStatus(enum.Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'


class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    name = db.Column(db.String(100), nullable=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(
        db.Enum(UserRole),
        nullable=False,
        default=UserRole.BUYER)
    email_verified = db.Column(db.Boolean, default=False, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)
    last_login_at = db.Column(db.DateTime, nullable=True)

    # Relationships
    cart_items = db.relationship(
        'CartItem',
        backref='user',
        lazy='dynamic',
        cascade='all, delete-orphan')
    orders = db.relationship('Order', backref='buyer', lazy='dynamic')
    notifications = db.relationship(
        'Notification',
        backref='user',
        lazy='dynamic',
        cascade='all, delete-orphan')

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @property
    def display_name(self):
        return self.name or self.email

    def __repr__(self):
        return f'<User {self.email}>'


class Product(db.Model):
    __tablename__ = 'products'

    id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    name = db.Column(db.String(200), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    stock = db.Column(db.Integer, nullable=False, default=0)
    # URL returned by the external upload service
    image = db.Column(db.String(500), nullable=True)
    category = db.Column(db.String(100), nullable=True, index=True)
    # Average review rating, refreshed whenever a review changes
    rating = db.Column(db.Float, nullable=False, default=0)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False)

    # Soft delete
    is_deleted = db.Column(db.Boolean, default=False, nullable=False)
    deleted_at = db.Column(db.DateTime, nullable=True)

    # Relationships
    seller = db.relationship(
        'User',
        foreign_keys=[seller_id],
        backref='products')
    cart_items = db.relationship(
        'CartItem',
        backref='product',
        lazy='dynamic',
        cascade='all, delete-orphan')
    order_items = db.relationship(
        'OrderItem',
        backref='product',
        lazy='dynamic')
    reviews = db.relationship(
        'ProductReview',
        backref='product',
        lazy='dynamic',
        cascade='all, delete-orphan')

    __table_args__ = (
        CheckConstraint('stock >= 0', name='check_product_stock'),
    )

    def __repr__(self):
        return f'<Product {self.name}>'


class CartItem(db.Model):
    __tablename__ = 'cart_items'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'products.id',
            ondelete='CASCADE'),
        nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)

    __table_args__ = (
        CheckConstraint('quantity > 0', name='check_quantity_positive'),
        UniqueConstraint(
            'user_id',
            'product_id',
            name='uq_cart_user_product'),
    )

    def __repr__(self):
        return (
            f"<CartItem user={self.user_id} product={self.product_id} "
            f"qty={self.quantity}>"
        )


class Order(db.Model):
    __tablename__ = 'orders'

    id = db.Column(db.Integer, primary_key=True)
    buyer_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    total_amount = db.Column(db.Numeric(10, 2), nullable=False)
    # Address snapshots, stored as JSON text at checkout time
    shipping_address = db.Column(db.Text, nullable=False)
    billing_address = db.Column(db.Text, nullable=False)
    payment_method = db.Column(db.String(50), nullable=False)
    status = db.Column(
        db.Enum(OrderStatus),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True)
    admin_approval_required = db.Column(
        db.Boolean,
        default=False,
        nullable=False)
    cancellation_reason = db.Column(db.Text, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False)

    items = db.relationship(
        'OrderItem',
        backref='order',
        lazy='dynamic',
        cascade='all, delete-orphan')
    tracking_history = db.relationship(
        'TrackingHistoryEntry',
        backref='order',
        lazy='dynamic',
        order_by='TrackingHistoryEntry.id',
        cascade='all, delete-orphan')

    def seller_ids(self):
        return {item.product.seller_id for item in self.items if item.product}

    def __repr__(self):
        return f'<Order {self.id} status={self.status}>'


class OrderItem(db.Model):
    __tablename__ = 'order_items'

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'orders.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'products.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    quantity = db.Column(db.Integer, nullable=False)
    # Order snapshot price.
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)

    __table_args__ = (
        CheckConstraint('quantity > 0', name='check_order_quantity_positive'),
    )

    def __repr__(self):
        return (
            f"<OrderItem {self.id} order={self.order_id} "
            f"product={self.product_id}>"
        )


class TrackingHistoryEntry(db.Model):
    __tablename__ = 'order_tracking_history'

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'orders.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    status = db.Column(db.Enum(OrderStatus), nullable=False)
    description = db.Column(db.String(500), nullable=True)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)

    def __repr__(self):
        return f'<TrackingHistoryEntry order={self.order_id} {self.status}>'


class Conversation(db.Model):
    __tablename__ = 'conversations'

    id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    buyer_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'products.id',
            ondelete='SET NULL'),
        nullable=True)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)

    seller = db.relationship('User', foreign_keys=[seller_id])
    buyer = db.relationship('User', foreign_keys=[buyer_id])
    product = db.relationship('Product', foreign_keys=[product_id])
    messages = db.relationship(
        'Message',
        backref='conversation',
        lazy='dynamic',
        order_by='Message.id',
        cascade='all, delete-orphan')

    __table_args__ = (
        UniqueConstraint(
            'seller_id',
            'buyer_id',
            'product_id',
            name='uq_conversation_seller_buyer_product'),
    )

    def has_participant(self, user_id):
        return user_id in (self.seller_id, self.buyer_id)

    def peer_of(self, user_id):
        return self.buyer_id if user_id == self.seller_id else self.seller_id

    def __repr__(self):
        return f'<Conversation {self.id} product={self.product_id}>'


class Message(db.Model):
    __tablename__ = 'messages'

    id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'conversations.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    sender_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='SET NULL'),
        nullable=True,
        index=True)
    content = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False,
        index=True)

    sender = db.relationship('User', foreign_keys=[sender_id])

    def __repr__(self):
        return f'<Message {self.id} conversation={self.conversation_id}>'


class Otp(db.Model):
    __tablename__ = 'otps'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), nullable=False, index=True)
    code = db.Column(db.String(12), nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    verified = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)

    def __repr__(self):
        return f'<Otp {self.id} for {self.email}>'


class Recipe(db.Model):
    __tablename__ = 'recipes'

    id = db.Column(db.Integer, primary_key=True)
    author_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='SET NULL'),
        nullable=True,
        index=True)
    title = db.Column(db.String(200), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False)
    # JSON encoded lists of strings
    ingredients_json = db.Column(db.Text, nullable=False, default='[]')
    instructions_json = db.Column(db.Text, nullable=False, default='[]')
    image = db.Column(db.String(500), nullable=True)
    prep_time = db.Column(db.Integer, nullable=True)
    cook_time = db.Column(db.Integer, nullable=True)
    servings = db.Column(db.Integer, nullable=True)
    difficulty = db.Column(db.String(20), nullable=True)
    rating = db.Column(db.Float, nullable=False, default=0)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False)

    author = db.relationship('User', foreign_keys=[author_id])
    favorites = db.relationship(
        'RecipeFavorite',
        backref='recipe',
        lazy='dynamic',
        cascade='all, delete-orphan')
    saved_by = db.relationship(
        'SavedRecipe',
        backref='recipe',
        lazy='dynamic',
        cascade='all, delete-orphan')
    reviews = db.relationship(
        'RecipeReview',
        backref='recipe',
        lazy='dynamic',
        cascade='all, delete-orphan')

    @property
    def ingredients(self):
        return json.loads(self.ingredients_json or '[]')

    @ingredients.setter
    def ingredients(self, value):
        self.ingredients_json = json.dumps(list(value), ensure_ascii=False)

    @property
    def instructions(self):
        return json.loads(self.instructions_json or '[]')

    @instructions.setter
    def instructions(self, value):
        self.instructions_json = json.dumps(list(value), ensure_ascii=False)

    def __repr__(self):
        return f'<Recipe {self.title}>'


class RecipeFavorite(db.Model):
    __tablename__ = 'recipe_favorites'

    user_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        primary_key=True)
    recipe_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'recipes.id',
            ondelete='CASCADE'),
        primary_key=True)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)

    def __repr__(self):
        return (
            f"<RecipeFavorite user={self.user_id} "
            f"recipe={self.recipe_id}>"
        )


class SavedRecipe(db.Model):
    __tablename__ = 'saved_recipes'

    user_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        primary_key=True)
    recipe_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'recipes.id',
            ondelete='CASCADE'),
        primary_key=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)

    def __repr__(self):
        return f'<SavedRecipe user={self.user_id} recipe={self.recipe_id}>'


class ProductReview(db.Model):
    __tablename__ = 'product_reviews'

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'products.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    rating = db.Column(db.Integer, nullable=False)
    content = db.Column(db.Text, nullable=True)
    seller_reply = db.Column(db.Text, nullable=True)
    seller_reply_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False)

    user = db.relationship('User', foreign_keys=[user_id])

    __table_args__ = (
        CheckConstraint(
            'rating >= 1 AND rating <= 5',
            name='check_product_review_rating'),
        UniqueConstraint(
            'product_id',
            'user_id',
            name='uq_product_review_user'),
    )

    def __repr__(self):
        return f'<ProductReview {self.id} product={self.product_id}>'


class RecipeReview(db.Model):
    __tablename__ = 'recipe_reviews'

    id = db.Column(db.Integer, primary_key=True)
    recipe_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'recipes.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    rating = db.Column(db.Integer, nullable=False)
    content = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False)

    user = db.relationship('User', foreign_keys=[user_id])

    __table_args__ = (
        CheckConstraint(
            'rating >= 1 AND rating <= 5',
            name='check_recipe_review_rating'),
        UniqueConstraint(
            'recipe_id',
            'user_id',
            name='uq_recipe_review_user'),
    )

    def __repr__(self):
        return f'<RecipeReview {self.id} recipe={self.recipe_id}>'


class Address(db.Model):
    __tablename__ = 'addresses'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    full_name = db.Column(db.String(100), nullable=False)
    phone_number = db.Column(db.String(20), nullable=False)
    region = db.Column(db.String(100), nullable=False)
    province = db.Column(db.String(100), nullable=False)
    city = db.Column(db.String(100), nullable=False)
    barangay = db.Column(db.String(100), nullable=False)
    street_address = db.Column(db.String(255), nullable=False)
    postal_code = db.Column(db.String(4), nullable=False)
    landmark = db.Column(db.String(255), nullable=True)
    is_default = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False)

    user = db.relationship(
        'User',
        foreign_keys=[user_id],
        backref=db.backref(
            'addresses',
            lazy='dynamic',
            cascade='all, delete-orphan'))

    def one_line(self):
        parts = [
            self.street_address,
            self.barangay,
            self.city,
            self.province,
            self.region,
            self.postal_code,
        ]
        return ', '.join(p for p in parts if p)

    def __repr__(self):
        return f'<Address {self.id} user={self.user_id}>'


class SellerApplication(db.Model):
    __tablename__ = 'seller_applications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        nullable=False,
        unique=True)
    business_name = db.Column(db.String(200), nullable=False)
    business_type = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=False)
    contact_number = db.Column(db.String(20), nullable=False)
    address = db.Column(db.Text, nullable=False)
    status = db.Column(
        db.Enum(ApplicationStatus),
        default=ApplicationStatus.PENDING,
        nullable=False,
        index=True)
    reviewed_by = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='SET NULL'),
        nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)

    user = db.relationship('User', foreign_keys=[user_id])
    reviewer = db.relationship('User', foreign_keys=[reviewed_by])

    def __repr__(self):
        return f'<SellerApplication {self.id} status={self.status}>'


class Notification(db.Model):
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    type = db.Column(db.Enum(NotificationType), nullable=False)
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False,
        index=True)

    def __repr__(self):
        return f'<Notification {self.id} user={self.user_id}>'


class AuditLog(db.Model):
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    actor_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='SET NULL'),
        nullable=True)
    actor_role = db.Column(db.String(20), nullable=False)
    # e.g., ORDER_CANCEL_BUYER, OTP_VERIFY_FAILED
    action = db.Column(db.String(100), nullable=False)
    # ORDER, PRODUCT, RECIPE, etc.
    target_type = db.Column(db.String(50), nullable=True)
    target_id = db.Column(db.Integer, nullable=True)
    ip = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)
    # JSON format key field snapshot
    payload_json = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False,
        index=True)

    actor = db.relationship('User', foreign_keys=[actor_id])

    def set_payload(self, data):
        self.payload_json = json.dumps(data, ensure_ascii=False)

    def get_payload(self):
        if self.payload_json:
            return json.loads(self.payload_json)
        return {}

    def __repr__(self):
        return f'<AuditLog {self.id} action={self.action}>'

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "8d4e2a61c7b3"
down_revision = "3f1c2b7a9d10"
branch_labels = None
depends_on = None

OLD_NOTIFICATION_TYPE = sa.Enum(
    "ORDER_UPDATE", "ADMIN_ACTION_REQUIRED", "CHAT",
    name="notificationtype",
)
NEW_NOTIFICATION_TYPE = sa.Enum(
    "ORDER_UPDATE", "ADMIN_ACTION_REQUIRED", "CHAT", "SELLER_APPLICATION",
    name="notificationtype",
)


def upgrade():
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.add_column(
            sa.Column(
                "rating", sa.Float(), nullable=False, server_default="0")
        )
    with op.batch_alter_table("recipes", schema=None) as batch_op:
        batch_op.add_column(
            sa.Column(
                "rating", sa.Float(), nullable=False, server_default="0")
        )
    with op.batch_alter_table("notifications", schema=None) as batch_op:
        batch_op.alter_column(
            "type",
            existing_type=OLD_NOTIFICATION_TYPE,
            type_=NEW_NOTIFICATION_TYPE,
            existing_nullable=False,
        )

    op.create_table(
        "product_reviews",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("seller_reply", sa.Text(), nullable=True),
        sa.Column("seller_reply_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "rating >= 1 AND rating <= 5",
            name="check_product_review_rating"),
        sa.ForeignKeyConstraint(
            ["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "product_id", "user_id", name="uq_product_review_user"),
    )
    op.create_index(
        "ix_product_reviews_product_id", "product_reviews", ["product_id"])
    op.create_index(
        "ix_product_reviews_user_id", "product_reviews", ["user_id"])

    op.create_table(
        "recipe_reviews",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("recipe_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "rating >= 1 AND rating <= 5",
            name="check_recipe_review_rating"),
        sa.ForeignKeyConstraint(
            ["recipe_id"], ["recipes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "recipe_id", "user_id", name="uq_recipe_review_user"),
    )
    op.create_index(
        "ix_recipe_reviews_recipe_id", "recipe_reviews", ["recipe_id"])
    op.create_index(
        "ix_recipe_reviews_user_id", "recipe_reviews", ["user_id"])

    op.create_table(
        "addresses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("full_name", sa.String(length=100), nullable=False),
        sa.Column("phone_number", sa.String(length=20), nullable=False),
        sa.Column("region", sa.String(length=100), nullable=False),
        sa.Column("province", sa.String(length=100), nullable=False),
        sa.Column("city", sa.String(length=100), nullable=False),
        sa.Column("barangay", sa.String(length=100), nullable=False),
        sa.Column("street_address", sa.String(length=255), nullable=False),
        sa.Column("postal_code", sa.String(length=4), nullable=False),
        sa.Column("landmark", sa.String(length=255), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_addresses_user_id", "addresses", ["user_id"])

    op.create_table(
        "seller_applications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("business_name", sa.String(length=200), nullable=False),
        sa.Column("business_type", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("contact_number", sa.String(length=20), nullable=False),
        sa.Column("address", sa.Text(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "PENDING", "APPROVED", "REJECTED",
                name="applicationstatus"),
            nullable=False,
        ),
        sa.Column("reviewed_by", sa.Integer(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["reviewed_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id"),
    )
    op.create_index(
        "ix_seller_applications_status", "seller_applications", ["status"])


def downgrade():
    op.drop_table("seller_applications")
    op.drop_table("addresses")
    op.drop_table("recipe_reviews")
    op.drop_table("product_reviews")
    with op.batch_alter_table("notifications", schema=None) as batch_op:
        batch_op.alter_column(
            "type",
            existing_type=NEW_NOTIFICATION_TYPE,
            type_=OLD_NOTIFICATION_TYPE,
            existing_nullable=False,
        )
    with op.batch_alter_table("recipes", schema=None) as batch_op:
        batch_op.drop_column("rating")
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.drop_column("rating")

from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        "service_requests",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("client_id", sa.String(), nullable=False),
        sa.Column("provider_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("pricing_type", sa.String(length=32), nullable=False),
        sa.Column("proposed_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("proposed_hours", sa.Integer(), nullable=True),
        sa.Column("proposed_days", sa.Integer(), nullable=True),
        sa.Column("scheduled_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("daily_sessions", sa.JSON(), nullable=False),
        sa.Column("client_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("provider_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_method", sa.String(length=32), nullable=True),
        sa.Column("payment_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("balance_added_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
    )
    op.create_index("ix_service_requests_client_id", "service_requests", ["client_id"], unique=False)
    op.create_index("ix_service_requests_provider_id", "service_requests", ["provider_id"], unique=False)
    op.create_index("ix_service_requests_status", "service_requests", ["status"], unique=False)

    op.create_table(
        "negotiations",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("request_id", sa.String(), sa.ForeignKey("service_requests.id"), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("proposer_id", sa.String(), nullable=False),
        sa.Column("pricing_type", sa.String(length=32), nullable=False),
        sa.Column("proposed_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("proposed_hours", sa.Integer(), nullable=True),
        sa.Column("proposed_days", sa.Integer(), nullable=True),
        sa.Column("proposed_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("request_id", "sequence", name="uq_negotiations_request_sequence"),
    )
    op.create_index("ix_negotiations_request_id", "negotiations", ["request_id"], unique=False)

    op.create_table(
        "reviews",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("request_id", sa.String(), sa.ForeignKey("service_requests.id"), nullable=False),
        sa.Column("reviewer_id", sa.String(), nullable=False),
        sa.Column("reviewee_id", sa.String(), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("comment", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("request_id", "reviewer_id", name="uq_reviews_request_reviewer"),
    )
    op.create_index("ix_reviews_request_id", "reviews", ["request_id"], unique=False)
    op.create_index("ix_reviews_reviewer_id", "reviews", ["reviewer_id"], unique=False)
    op.create_index("ix_reviews_reviewee_id", "reviews", ["reviewee_id"], unique=False)

def downgrade():
    op.drop_index("ix_reviews_reviewee_id", table_name="reviews")
    op.drop_index("ix_reviews_reviewer_id", table_name="reviews")
    op.drop_index("ix_reviews_request_id", table_name="reviews")
    op.drop_table("reviews")
    op.drop_index("ix_negotiations_request_id", table_name="negotiations")
    op.drop_table("negotiations")
    op.drop_index("ix_service_requests_status", table_name="service_requests")
    op.drop_index("ix_service_requests_provider_id", table_name="service_requests")
    op.drop_index("ix_service_requests_client_id", table_name="service_requests")
    op.drop_table("service_requests")

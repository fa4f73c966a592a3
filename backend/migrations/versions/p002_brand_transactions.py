"""Add brand transactions (payables to brands)

Revision ID: p002_brand_transactions
Revises: p001_initial_ledger
Create Date: 2026-03-09
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "p002_brand_transactions"
down_revision = "p001_initial_ledger"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "brand_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("brand", sa.String(128), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("confirmation_status", sa.String(16), nullable=False, server_default="not_confirmed"),
        sa.Column("pay_status", sa.String(16), nullable=False, server_default="unpaid"),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("updated_by", sa.String(64), nullable=True),
        sa.Column("change_description", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.CheckConstraint("amount_cents > 0", name=op.f("ck_brand_transactions_amount_positive")),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_brand_transactions")),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("brand_transactions", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_brand_transactions_user_id"), ["user_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_brand_transactions_brand"), ["brand"], unique=False)
        batch_op.create_index(batch_op.f("ix_brand_transactions_transaction_date"), ["transaction_date"], unique=False)
        batch_op.create_index(
            batch_op.f("ix_brand_transactions_confirmation_status"), ["confirmation_status"], unique=False
        )
        batch_op.create_index("ix_brand_transactions_pay_due", ["pay_status", "due_date"], unique=False)


def downgrade():
    with op.batch_alter_table("brand_transactions", schema=None) as batch_op:
        batch_op.drop_index("ix_brand_transactions_pay_due")
        batch_op.drop_index(batch_op.f("ix_brand_transactions_confirmation_status"))
        batch_op.drop_index(batch_op.f("ix_brand_transactions_transaction_date"))
        batch_op.drop_index(batch_op.f("ix_brand_transactions_brand"))
        batch_op.drop_index(batch_op.f("ix_brand_transactions_user_id"))
    op.drop_table("brand_transactions")

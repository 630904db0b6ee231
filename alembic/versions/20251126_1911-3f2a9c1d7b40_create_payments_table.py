"""create_payments_table

Revision ID: 3f2a9c1d7b40
Revises:
Create Date: 2025-11-26 19:11:14.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f2a9c1d7b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('reservation_id', sa.Integer(), nullable=False, comment='预订ID'),
        sa.Column('amount', sa.Numeric(precision=10, scale=2), nullable=False, comment='支付金额'),
        sa.Column('currency', sa.String(length=10), nullable=False, server_default='EUR', comment='货币代码 ISO-4217'),
        sa.Column('amount_refunded', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0', comment='已退款金额（渠道侧累计值）'),
        sa.Column('provider', sa.String(length=20), nullable=False, server_default='stripe', comment='支付提供商'),
        sa.Column('provider_intent_id', sa.String(length=100), nullable=True, comment='渠道 PaymentIntent ID'),
        sa.Column('client_secret', sa.String(length=500), nullable=True, comment='客户端密钥（用于前端调用）'),
        sa.Column('provider_charge_id', sa.String(length=100), nullable=True, comment='渠道扣款ID'),
        sa.Column('status', sa.String(length=30), nullable=False, server_default='RequiresPayment', comment='支付状态'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true(), comment='失败/取消后为 False'),
        sa.Column('last_provider_event_id', sa.String(length=100), nullable=True, comment='最后应用的渠道事件ID'),
        sa.Column('error_code', sa.String(length=50), nullable=True, comment='渠道错误码'),
        sa.Column('error_message', sa.String(length=300), nullable=True, comment='渠道错误信息'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, comment='创建时间'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True, comment='支付完成时间'),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True, comment='退款时间'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount >= 0', name='ck_payments_amount_non_negative'),
        sa.CheckConstraint('amount_refunded >= 0', name='ck_payments_amount_refunded_non_negative'),
        sa.CheckConstraint("status <> 'Refunded' OR amount_refunded > 0", name='ck_payments_refund_logic'),
    )

    op.create_index('ix_payments_reservation_id', 'payments', ['reservation_id'], unique=False)
    op.create_index('ix_payments_provider_intent_id', 'payments', ['provider_intent_id'], unique=True)
    op.create_index('ix_payments_provider_charge_id', 'payments', ['provider_charge_id'], unique=False)
    op.create_index('ix_payments_status', 'payments', ['status'], unique=False)
    op.create_index('ix_payments_is_active', 'payments', ['is_active'], unique=False)
    op.create_index('ix_payments_created_at', 'payments', ['created_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_payments_created_at', table_name='payments')
    op.drop_index('ix_payments_is_active', table_name='payments')
    op.drop_index('ix_payments_status', table_name='payments')
    op.drop_index('ix_payments_provider_charge_id', table_name='payments')
    op.drop_index('ix_payments_provider_intent_id', table_name='payments')
    op.drop_index('ix_payments_reservation_id', table_name='payments')
    op.drop_table('payments')

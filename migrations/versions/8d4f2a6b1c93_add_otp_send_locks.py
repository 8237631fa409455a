"""add otp_send_locks

Revision ID: 8d4f2a6b1c93
Revises: 3a91c0d5e7b2
Create Date: 2025-11-17 09:41:05.518204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8d4f2a6b1c93'
down_revision: Union[str, Sequence[str], None] = '3a91c0d5e7b2'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'otp_send_locks',
        sa.Column('lock_key', sa.String(length=80), primary_key=True),
        sa.Column('touched_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_otp_send_locks_touched_at', 'otp_send_locks', ['touched_at'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_otp_send_locks_touched_at', table_name='otp_send_locks')
    op.drop_table('otp_send_locks')

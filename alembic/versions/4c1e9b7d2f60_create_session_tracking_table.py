"""Create session tracking table

Revision ID: 4c1e9b7d2f60
Revises:
Create Date: 2026-10-19 10:12:41.503217

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4c1e9b7d2f60'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Byte-wise collation keeps sort keys in lexicographic order
key_type = sa.String().with_variant(sa.String(collation='C'), 'postgresql')


def upgrade():
    op.create_table(
        'session_tracking',
        sa.Column('PK', key_type, nullable=False),
        sa.Column('SK', key_type, nullable=False),
        sa.Column('GSI1PK', key_type, nullable=True),
        sa.Column('GSI1SK', key_type, nullable=True),
        sa.Column('itemType', sa.String(), nullable=True),
        sa.Column('attributes', sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint('PK', 'SK'),
        if_not_exists=True
    )
    # Sessions by user, ordered by creation time
    op.create_index('GSI1', 'session_tracking', ['GSI1PK', 'GSI1SK'], if_not_exists=True)
    op.create_index(
        'ix_session_tracking_itemType', 'session_tracking', ['itemType'], if_not_exists=True
    )


def downgrade():
    op.drop_index('ix_session_tracking_itemType', 'session_tracking')
    op.drop_index('GSI1', 'session_tracking')
    op.drop_table('session_tracking')

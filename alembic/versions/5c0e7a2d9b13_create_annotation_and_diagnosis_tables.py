"""create slice_annotations and patient_diagnoses tables

Revision ID: 5c0e7a2d9b13
Revises: 
Create Date: 2026-10-19 10:12:41.518203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5c0e7a2d9b13'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'slice_annotations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('patient_id', sa.String(), nullable=False),
        sa.Column('slice_index', sa.Integer(), nullable=False),
        sa.Column('note', sa.Text(), nullable=False),
        sa.Column('image_data', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('patient_id', 'slice_index', name='uq_annotation_slice'),
    )
    op.create_index(op.f('ix_slice_annotations_id'), 'slice_annotations', ['id'], unique=False)
    op.create_index(op.f('ix_slice_annotations_patient_id'), 'slice_annotations', ['patient_id'], unique=False)
    op.create_table(
        'patient_diagnoses',
        sa.Column('patient_id', sa.String(), nullable=False),
        sa.Column('diagnosis', sa.String(), nullable=True),
        sa.Column('confidence', sa.String(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('patient_id'),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('patient_diagnoses')
    op.drop_index(op.f('ix_slice_annotations_patient_id'), table_name='slice_annotations')
    op.drop_index(op.f('ix_slice_annotations_id'), table_name='slice_annotations')
    op.drop_table('slice_annotations')

"""initial_schema_baseline

Revision ID: 3b9c1d7e2a40
Revises:
Create Date: 2026-10-16 09:12:41.517204

Baseline migration for the clinic assistant. Creates every table from the
current model definitions (clinicians, patients, specialties, appointments,
clinic histories, conversations and their turns, webhook delivery records,
session tokens and contact windows), then adds the check constraints that the
models only document.
"""
from typing import Sequence, Union
import sys
import os

# Add src directory to path to import models
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from alembic import op

# Import all models to ensure they're registered with Base.metadata
from core.database import Base
import models  # noqa: F401


# revision identifiers, used by Alembic.
revision: str = '3b9c1d7e2a40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    Create all database tables from SQLAlchemy models.

    Includes the partial unique index that allows at most one active
    conversation per clinician. Check constraints are PostgreSQL only;
    SQLite cannot add them after table creation.
    """
    bind = op.get_bind()

    # Step 1: Create all tables from models
    Base.metadata.create_all(bind=bind)

    if bind.dialect.name != 'postgresql':
        return

    # Step 2: Add check constraints
    op.create_check_constraint(
        'check_appointment_status',
        'appointments',
        "status IN ('pending', 'confirmed', 'cancelled', 'completed')"
    )

    op.create_check_constraint(
        'check_appointment_time_range',
        'appointments',
        "start_time < end_time"
    )

    op.create_check_constraint(
        'check_conversation_message_role',
        'conversation_messages',
        "role IN ('user', 'assistant')"
    )

    op.create_check_constraint(
        'check_conversation_context_message_limit',
        'conversations',
        "context_message_limit BETWEEN 1 AND 100"
    )

    op.create_check_constraint(
        'check_patient_gender',
        'patients',
        "gender IS NULL OR gender IN ('male', 'female')"
    )


def downgrade() -> None:
    """
    Drop all database tables.

    Dropping the tables removes their indexes and constraints with them.
    """
    Base.metadata.drop_all(bind=op.get_bind())

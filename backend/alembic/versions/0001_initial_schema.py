"""Initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Tables:
  - challenges: Challenge fields read by the deployer
  - deployments: One deployment record per challenge
  - deployment_logs: Append-only deployment log lines
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    schema = 'challenge_deployer'

    # =========================================================================
    # 1. challenges
    # =========================================================================
    op.create_table(
        'challenges',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('github_url', sa.String(500), nullable=True),
        sa.Column('deployable', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('port', sa.Integer(), nullable=False, server_default='4445'),
        sa.Column('internal_port', sa.Integer(), nullable=False, server_default='8080'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        schema=schema,
    )

    # =========================================================================
    # 2. deployments
    # =========================================================================
    op.create_table(
        'deployments',
        sa.Column('challenge_id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('github_url', sa.String(500), nullable=True),
        sa.Column('port', sa.Integer(), nullable=True),
        sa.Column('internal_port', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='not_deployed'),
        sa.Column('container_id', sa.String(64), nullable=True),
        sa.Column('storage_path', sa.String(1000), nullable=True),
        sa.Column('deployed_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ['challenge_id'], [f'{schema}.challenges.id'],
            name='deployments_challenge_id_fkey', ondelete='CASCADE',
        ),
        schema=schema,
    )
    op.create_index('ix_deployments_port', 'deployments', ['port'], schema=schema)
    op.create_index('ix_deployments_status', 'deployments', ['status'], schema=schema)
    op.create_index('ix_deployments_container_id', 'deployments', ['container_id'], schema=schema)
    op.create_index('ix_deployments_updated_at', 'deployments', ['updated_at'], schema=schema)
    op.create_check_constraint(
        'ck_deployments_status',
        'deployments',
        "status IN ('not_deployed', 'building', 'active', 'failed')",
        schema=schema,
    )

    # =========================================================================
    # 3. deployment_logs
    # =========================================================================
    op.create_table(
        'deployment_logs',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('challenge_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('line', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ['challenge_id'], [f'{schema}.deployments.challenge_id'],
            name='deployment_logs_challenge_id_fkey', ondelete='CASCADE',
        ),
        schema=schema,
    )
    op.create_index('ix_deployment_logs_challenge_id', 'deployment_logs', ['challenge_id'], schema=schema)


def downgrade() -> None:
    schema = 'challenge_deployer'

    # Drop in reverse dependency order
    op.drop_table('deployment_logs', schema=schema)
    op.drop_table('deployments', schema=schema)
    op.drop_table('challenges', schema=schema)

"""Create pgmq extension and application queues

Revision ID: 001
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

QUEUES = (
    "calculo_fiscal",
    "processamento_documentos",
    "notificacoes",
    "integracoes_externas",
    "geracao_relatorios",
)


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgmq")

    # pgmq.create is a no-op for queues that already exist
    for queue in QUEUES:
        op.execute(f"SELECT pgmq.create('{queue}')")


def downgrade() -> None:
    for queue in QUEUES:
        op.execute(f"SELECT pgmq.drop_queue('{queue}')")

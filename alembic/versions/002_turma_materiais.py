"""Add turma_materiais and facial evidence columns on turma_participantes

Revision ID: 002_turma_materiais
Revises: 001_initial
Create Date: 2026-10-18
"""
import uuid

from alembic import op
import sqlalchemy as sa

revision = "002_turma_materiais"
down_revision = "001_initial"
branch_labels = None
depends_on = None


def _participant_columns() -> list[sa.Column]:
    return [
        sa.Column("foto_evidencia_path", sa.String(500), nullable=True),
        sa.Column("foto_evidencia_url", sa.String(500), nullable=True),
        sa.Column("evidencia_facial_em", sa.DateTime(timezone=True), nullable=True),
    ]


def _column_exists(table: str, column: str) -> bool:
    conn = op.get_bind()
    return column in {c["name"] for c in sa.inspect(conn).get_columns(table)}


def upgrade() -> None:
    conn = op.get_bind()
    if not sa.inspect(conn).has_table("turma_materiais"):
        turma_materiais = op.create_table(
            "turma_materiais",
            sa.Column("id", sa.Uuid, primary_key=True),
            sa.Column(
                "turma_id", sa.Uuid, sa.ForeignKey("turmas.id", ondelete="CASCADE"), nullable=False
            ),
            sa.Column("tipo", sa.String(10), nullable=False),
            sa.Column("material_id", sa.Uuid, nullable=False),
            sa.Column("material_versao", sa.Integer, nullable=False),
            sa.Column("trilha_id", sa.Uuid, nullable=True),
            sa.UniqueConstraint(
                "turma_id", "tipo", "material_id", "material_versao", name="uq_turma_material"
            ),
        )
        op.create_index("ix_turma_materiais_turma_id", "turma_materiais", ["turma_id"])

        # Link what the completion rows of existing turmas show
        rows = conn.execute(
            sa.text(
                "SELECT DISTINCT turma_id, tipo, material_id, material_versao, trilha_id "
                "FROM user_trainings WHERE turma_id IS NOT NULL"
            )
        ).all()
        if rows:
            op.bulk_insert(
                turma_materiais,
                [
                    {
                        "id": uuid.uuid4(),
                        "turma_id": turma_id,
                        "tipo": str(tipo).lower(),
                        "material_id": material_id,
                        "material_versao": versao,
                        "trilha_id": trilha_id,
                    }
                    for turma_id, tipo, material_id, versao, trilha_id in rows
                ],
            )

    for column in _participant_columns():
        if not _column_exists("turma_participantes", column.name):
            op.add_column("turma_participantes", column)


def downgrade() -> None:
    for column in _participant_columns():
        op.drop_column("turma_participantes", column.name)
    op.drop_table("turma_materiais")

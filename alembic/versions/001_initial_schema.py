"""Initial schema: users, catalog, completions, turmas, provas, faces, feedbacks

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _table_exists(name: str) -> bool:
    conn = op.get_bind()
    return sa.inspect(conn).has_table(name)


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now())


def upgrade() -> None:
    if not _table_exists("users"):
        op.create_table(
            "users",
            sa.Column("cpf", sa.String(11), primary_key=True),
            sa.Column("nome", sa.String(255), nullable=False),
            sa.Column("hashed_password", sa.String(255), nullable=True),
            sa.Column("idade", sa.Integer, nullable=True),
            sa.Column("sexo", sa.String(20), nullable=True),
            sa.Column("nome_filial", sa.String(255), nullable=True),
            sa.Column("dt_nascimento", sa.Date, nullable=True),
            sa.Column("cargo", sa.String(255), nullable=True),
            sa.Column("setor", sa.String(255), nullable=True),
            sa.Column(
                "permissao",
                sa.Enum("ADMIN", "INSTRUTOR", "COLABORADOR", name="userrole"),
                nullable=False,
            ),
            sa.Column("instrutor", sa.Boolean, nullable=False, server_default="false"),
            sa.Column("ativo", sa.Boolean, nullable=False, server_default="true"),
            sa.Column("obra_codigo", sa.String(50), nullable=True),
            sa.Column("obra_nome", sa.String(255), nullable=True),
            _created_at(),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        )
        op.create_index("ix_users_obra_codigo", "users", ["obra_codigo"])

    # ── Catalog ──────────────────────────────────────
    if not _table_exists("modulos"):
        op.create_table(
            "modulos",
            sa.Column("id", sa.Uuid, primary_key=True),
            sa.Column("nome", sa.String(255), nullable=False),
            sa.Column("path", sa.String(500), nullable=True),
            sa.Column("duracao_segundos", sa.Integer, nullable=True),
            _created_at(),
        )

    if not _table_exists("trilhas"):
        op.create_table(
            "trilhas",
            sa.Column("id", sa.Uuid, primary_key=True),
            sa.Column(
                "modulo_id", sa.Uuid, sa.ForeignKey("modulos.id", ondelete="CASCADE"), nullable=False
            ),
            sa.Column("titulo", sa.String(255), nullable=False),
            sa.Column("path", sa.String(500), nullable=True),
            sa.Column("ordem", sa.Integer, server_default="0"),
            sa.Column("duracao_segundos", sa.Integer, nullable=True),
            sa.Column("eficacia_obrigatoria", sa.Boolean, server_default="false"),
            sa.Column("eficacia_pergunta", sa.Text, nullable=True),
            sa.Column("eficacia_atualizada_em", sa.DateTime(timezone=True), nullable=True),
            _created_at(),
        )
        op.create_index("ix_trilhas_modulo_id", "trilhas", ["modulo_id"])

    if not _table_exists("trilha_usuarios"):
        op.create_table(
            "trilha_usuarios",
            sa.Column(
                "trilha_id",
                sa.Uuid,
                sa.ForeignKey("trilhas.id", ondelete="CASCADE"),
                primary_key=True,
            ),
            sa.Column(
                "cpf",
                sa.String(11),
                sa.ForeignKey("users.cpf", ondelete="CASCADE"),
                primary_key=True,
            ),
        )

    if not _table_exists("videos"):
        op.create_table(
            "videos",
            sa.Column("id", sa.Uuid, primary_key=True),
            sa.Column(
                "trilha_id", sa.Uuid, sa.ForeignKey("trilhas.id", ondelete="CASCADE"), nullable=False
            ),
            sa.Column("titulo", sa.String(255), nullable=True),
            sa.Column("path_video", sa.String(1000), nullable=True),
            sa.Column("procedimento_id", sa.String(100), nullable=True),
            sa.Column("norma_id", sa.String(100), nullable=True),
            sa.Column("procedimento_observacoes", sa.Text, nullable=True),
            sa.Column("norma_observacoes", sa.Text, nullable=True),
            sa.Column("versao", sa.Integer, server_default="1"),
            sa.Column("duracao_segundos", sa.Integer, nullable=True),
            sa.Column("ordem", sa.Integer, server_default="0"),
            _created_at(),
        )
        op.create_index("ix_videos_trilha_id", "videos", ["trilha_id"])

    if not _table_exists("pdfs"):
        op.create_table(
            "pdfs",
            sa.Column("id", sa.Uuid, primary_key=True),
            sa.Column(
                "trilha_id", sa.Uuid, sa.ForeignKey("trilhas.id", ondelete="CASCADE"), nullable=False
            ),
            sa.Column("titulo", sa.String(255), nullable=True),
            sa.Column("pdf_path", sa.String(1000), nullable=True),
            sa.Column("versao", sa.Integer, server_default="1"),
            sa.Column("ordem", sa.Integer, server_default="0"),
            _created_at(),
        )
        op.create_index("ix_pdfs_trilha_id", "pdfs", ["trilha_id"])

    # ── Turmas ───────────────────────────────────────
    if not _table_exists("turmas"):
        op.create_table(
            "turmas",
            sa.Column("id", sa.Uuid, primary_key=True),
            sa.Column("nome", sa.String(255), nullable=False),
            sa.Column("status", sa.Enum("EM_ANDAMENTO", "FINALIZADA", name="turmastatus")),
            sa.Column("criado_por", sa.String(11), nullable=True),
            sa.Column("obra_local", sa.String(255), nullable=True),
            _created_at("criado_em"),
            sa.Column("iniciado_em", sa.DateTime(timezone=True), nullable=True),
            sa.Column("finalizado_em", sa.DateTime(timezone=True), nullable=True),
            sa.Column("duracao_treinamento_minutos", sa.Integer, nullable=True),
        )

    if not _table_exists("turma_participantes"):
        op.create_table(
            "turma_participantes",
            sa.Column("id", sa.Uuid, primary_key=True),
            sa.Column(
                "turma_id", sa.Uuid, sa.ForeignKey("turmas.id", ondelete="CASCADE"), nullable=False
            ),
            sa.Column("cpf", sa.String(11), nullable=False),
            sa.Column("nome", sa.String(255), nullable=True),
            sa.Column("raw", sa.JSON, nullable=True),
        )
        op.create_index("ix_turma_participantes_turma_id", "turma_participantes", ["turma_id"])

    if not _table_exists("turma_evidencias"):
        op.create_table(
            "turma_evidencias",
            sa.Column("id", sa.Uuid, primary_key=True),
            sa.Column(
                "turma_id", sa.Uuid, sa.ForeignKey("turmas.id", ondelete="CASCADE"), nullable=False
            ),
            sa.Column("arquivo_path", sa.String(500), nullable=False),
            sa.Column("nome_original", sa.String(255), nullable=True),
            sa.Column("mime_type", sa.String(100), nullable=True),
            sa.Column("ordem", sa.Integer, server_default="0"),
            sa.Column("criado_por", sa.String(11), nullable=True),
            _created_at("criado_em"),
        )
        op.create_index("ix_turma_evidencias_turma_id", "turma_evidencias", ["turma_id"])

    # ── Completions and efficacy ─────────────────────
    if not _table_exists("user_trainings"):
        op.create_table(
            "user_trainings",
            sa.Column("id", sa.Uuid, primary_key=True),
            sa.Column("cpf", sa.String(11), nullable=False),
            sa.Column("usuario_nome", sa.String(255), nullable=True),
            sa.Column("tipo", sa.Enum("VIDEO", "PDF", name="materialtipo")),
            sa.Column("material_id", sa.Uuid, nullable=False),
            sa.Column("material_versao", sa.Integer, nullable=False),
            sa.Column(
                "trilha_id", sa.Uuid, sa.ForeignKey("trilhas.id", ondelete="SET NULL"), nullable=True
            ),
            sa.Column(
                "turma_id", sa.Uuid, sa.ForeignKey("turmas.id", ondelete="SET NULL"), nullable=True
            ),
            sa.Column("origem", sa.Enum("INDIVIDUAL", "COLETIVO", name="origemconclusao")),
            sa.Column("dt_conclusao", sa.DateTime(timezone=True), nullable=False),
            sa.Column("usuario_raw", sa.JSON, nullable=True),
            sa.Column("foto_evidencia_path", sa.String(500), nullable=True),
            sa.Column("foto_evidencia_url", sa.String(1000), nullable=True),
            sa.Column("evidencia_facial_em", sa.DateTime(timezone=True), nullable=True),
            sa.Column("obra_local", sa.String(255), nullable=True),
            _created_at(),
            sa.UniqueConstraint(
                "cpf", "material_id", "material_versao", name="uq_user_training_material"
            ),
        )
        op.create_index("ix_user_trainings_cpf", "user_trainings", ["cpf"])
        op.create_index("ix_user_trainings_trilha_id", "user_trainings", ["trilha_id"])
        op.create_index("ix_user_trainings_turma_id", "user_trainings", ["turma_id"])

    if not _table_exists("avaliacoes_eficacia"):
        op.create_table(
            "avaliacoes_eficacia",
            sa.Column("id", sa.Uuid, primary_key=True),
            sa.Column("cpf", sa.String(11), nullable=False),
            sa.Column(
                "trilha_id", sa.Uuid, sa.ForeignKey("trilhas.id", ondelete="CASCADE"), nullable=False
            ),
            sa.Column(
                "turma_id", sa.Uuid, sa.ForeignKey("turmas.id", ondelete="SET NULL"), nullable=True
            ),
            sa.Column("nivel", sa.Integer, nullable=False),
            sa.Column("avaliado_em", sa.DateTime(timezone=True), nullable=False),
            sa.UniqueConstraint("cpf", "trilha_id", name="uq_eficacia_cpf_trilha"),
        )
        op.create_index("ix_avaliacoes_eficacia_cpf", "avaliacoes_eficacia", ["cpf"])

    # ── Provas ───────────────────────────────────────
    if not _table_exists("provas"):
        op.create_table(
            "provas",
            sa.Column("id", sa.Uuid, primary_key=True),
            sa.Column(
                "trilha_id", sa.Uuid, sa.ForeignKey("trilhas.id", ondelete="CASCADE"), nullable=False
            ),
            sa.Column("versao", sa.Integer, nullable=False),
            sa.Column(
                "modo_aplicacao",
                sa.Enum("COLETIVA", "INDIVIDUAL", name="modoaplicacao"),
                nullable=False,
            ),
            sa.Column("titulo", sa.String(255), nullable=True),
            sa.Column("nota_total", sa.Float, server_default="10"),
            sa.Column("media", sa.Float, server_default="7"),
            sa.Column("criado_por", sa.String(11), nullable=True),
            _created_at(),
            sa.Column("atualizado_em", sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.UniqueConstraint("trilha_id", "versao", name="uq_prova_trilha_versao"),
        )
        op.create_index("ix_provas_trilha_id", "provas", ["trilha_id"])

    if not _table_exists("prova_questoes"):
        op.create_table(
            "prova_questoes",
            sa.Column("id", sa.Uuid, primary_key=True),
            sa.Column(
                "prova_id", sa.Uuid, sa.ForeignKey("provas.id", ondelete="CASCADE"), nullable=False
            ),
            sa.Column("ordem", sa.Integer, server_default="0"),
            sa.Column("enunciado", sa.Text, nullable=False),
            sa.Column("peso", sa.Float, server_default="1"),
        )
        op.create_index("ix_prova_questoes_prova_id", "prova_questoes", ["prova_id"])

    if not _table_exists("prova_opcoes"):
        op.create_table(
            "prova_opcoes",
            sa.Column("id", sa.Uuid, primary_key=True),
            sa.Column(
                "questao_id",
                sa.Uuid,
                sa.ForeignKey("prova_questoes.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("ordem", sa.Integer, server_default="0"),
            sa.Column("texto", sa.Text, nullable=False),
            sa.Column("correta", sa.Boolean, server_default="false"),
        )
        op.create_index("ix_prova_opcoes_questao_id", "prova_opcoes", ["questao_id"])

    if not _table_exists("prova_submissoes"):
        op.create_table(
            "prova_submissoes",
            sa.Column("id", sa.Uuid, primary_key=True),
            sa.Column("idempotency_key", sa.String(128), nullable=True, unique=True),
            sa.Column(
                "prova_id", sa.Uuid, sa.ForeignKey("provas.id", ondelete="CASCADE"), nullable=False
            ),
            sa.Column(
                "turma_id", sa.Uuid, sa.ForeignKey("turmas.id", ondelete="SET NULL"), nullable=True
            ),
            sa.Column("enviado_por", sa.String(11), nullable=True),
            sa.Column("resposta", sa.JSON, nullable=False),
            _created_at(),
        )

    if not _table_exists("prova_resultados"):
        op.create_table(
            "prova_resultados",
            sa.Column("id", sa.Uuid, primary_key=True),
            sa.Column(
                "submissao_id",
                sa.Uuid,
                sa.ForeignKey("prova_submissoes.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("cpf", sa.String(11), nullable=False),
            sa.Column(
                "prova_id", sa.Uuid, sa.ForeignKey("provas.id", ondelete="CASCADE"), nullable=False
            ),
            sa.Column("prova_versao", sa.Integer, nullable=False),
            sa.Column("trilha_id", sa.Uuid, nullable=False),
            sa.Column("nota", sa.Float, nullable=False),
            sa.Column(
                "status", sa.Enum("APROVADO", "REPROVADO", name="resultadostatus"), nullable=False
            ),
            sa.Column("acertos", sa.Integer, nullable=False),
            sa.Column("total_questoes", sa.Integer, nullable=False),
            sa.Column("respostas", sa.JSON, nullable=True),
            sa.Column("turma_id", sa.Uuid, nullable=True),
            sa.Column("origem", sa.String(50), nullable=True),
            sa.Column("dt_realizacao", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_prova_resultados_submissao_id", "prova_resultados", ["submissao_id"])
        op.create_index("ix_prova_resultados_cpf", "prova_resultados", ["cpf"])
        op.create_index("ix_prova_resultados_trilha_id", "prova_resultados", ["trilha_id"])

    if not _table_exists("prova_tokens_coletivos"):
        op.create_table(
            "prova_tokens_coletivos",
            sa.Column("token", sa.String(64), primary_key=True),
            sa.Column(
                "turma_id", sa.Uuid, sa.ForeignKey("turmas.id", ondelete="SET NULL"), nullable=True
            ),
            sa.Column("trilha_ids", sa.JSON, nullable=False),
            sa.Column("cpfs", sa.JSON, nullable=False),
            sa.Column("criado_por", sa.String(11), nullable=True),
            _created_at(),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        )

    # ── Faces, feedbacks, audit ──────────────────────
    if not _table_exists("faces"):
        op.create_table(
            "faces",
            sa.Column("id", sa.Uuid, primary_key=True),
            sa.Column("cpf", sa.String(11), nullable=False),
            sa.Column("usuario_nome", sa.String(255), nullable=True),
            sa.Column("descriptor", sa.JSON, nullable=False),
            sa.Column("foto_path", sa.String(500), nullable=True),
            sa.Column("origem", sa.String(50), nullable=True),
            sa.Column("criado_por", sa.String(11), nullable=True),
            _created_at(),
        )
        op.create_index("ix_faces_cpf", "faces", ["cpf"])

    if not _table_exists("platform_satisfaction"):
        op.create_table(
            "platform_satisfaction",
            sa.Column("id", sa.Uuid, primary_key=True),
            sa.Column("cpf", sa.String(11), nullable=False),
            sa.Column("nivel_satisfacao", sa.Integer, nullable=False),
            sa.Column("respondido_em", sa.DateTime(timezone=True), nullable=False),
            _created_at(),
        )
        op.create_index("ix_platform_satisfaction_cpf", "platform_satisfaction", ["cpf"])

    if not _table_exists("audit_logs"):
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Uuid, primary_key=True),
            sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column("user_cpf", sa.String(11), nullable=True),
            sa.Column("action", sa.String(100), nullable=False),
            sa.Column("ip_address", sa.String(45), nullable=True),
            sa.Column("user_agent", sa.String(512), nullable=True),
            sa.Column("detail", sa.JSON, nullable=True),
            sa.Column("method", sa.String(10), nullable=True),
            sa.Column("path", sa.String(500), nullable=True),
            sa.Column("status_code", sa.Integer, nullable=True),
        )
        op.create_index("ix_audit_logs_timestamp", "audit_logs", ["timestamp"])
        op.create_index("ix_audit_logs_user_cpf", "audit_logs", ["user_cpf"])
        op.create_index("ix_audit_logs_action", "audit_logs", ["action"])


def downgrade() -> None:
    for table in (
        "audit_logs",
        "platform_satisfaction",
        "faces",
        "prova_tokens_coletivos",
        "prova_resultados",
        "prova_submissoes",
        "prova_opcoes",
        "prova_questoes",
        "provas",
        "avaliacoes_eficacia",
        "user_trainings",
        "turma_evidencias",
        "turma_participantes",
        "turmas",
        "pdfs",
        "videos",
        "trilha_usuarios",
        "trilhas",
        "modulos",
        "users",
    ):
        op.drop_table(table)
    for enum_name in (
        "resultadostatus",
        "modoaplicacao",
        "origemconclusao",
        "materialtipo",
        "turmastatus",
        "userrole",
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from gtreinamento.utils.cpf import is_valid_cpf_length, normalize_cpf


class SatisfactionStatus(BaseModel):
    deve_exibir: bool
    intervalo_dias: int
    ultima_resposta_em: datetime | None
    proxima_disponivel_em: datetime | None
    dias_desde_ultima: int | None


class SatisfactionCreate(BaseModel):
    cpf: str
    nivel_satisfacao: int = Field(ge=1, le=5)
    respondido_em: datetime | None = None

    @field_validator("cpf")
    @classmethod
    def validate_cpf(cls, v: str) -> str:
        cpf = normalize_cpf(v)
        if not is_valid_cpf_length(cpf):
            raise ValueError("CPF deve conter 11 dígitos")
        return cpf


class SatisfactionOut(BaseModel):
    respondido_em: datetime

    model_config = {"from_attributes": True}


class SurveyOption(BaseModel):
    value: int
    label: str


class SurveyOut(BaseModel):
    question: str
    options: list[SurveyOption]

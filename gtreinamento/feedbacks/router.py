from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from gtreinamento.auth.dependencies import ensure_self_or_instructor, get_current_user
from gtreinamento.database import get_db
from gtreinamento.feedbacks.constants import (
    PLATFORM_SATISFACTION_OPTIONS,
    PLATFORM_SATISFACTION_QUESTION,
    TRAINING_EFFICACY_OPTIONS,
    TRAINING_EFFICACY_QUESTION,
)
from gtreinamento.feedbacks.schemas import (
    SatisfactionCreate,
    SatisfactionOut,
    SatisfactionStatus,
    SurveyOption,
    SurveyOut,
)
from gtreinamento.feedbacks.service import record_satisfaction, satisfaction_status
from gtreinamento.users.models import User
from gtreinamento.utils.cpf import normalize_cpf

router = APIRouter()


def _survey(question: str, options: dict[int, str]) -> SurveyOut:
    return SurveyOut(
        question=question,
        options=[SurveyOption(value=k, label=v) for k, v in options.items()],
    )


@router.get("/surveys/eficacia", response_model=SurveyOut)
async def efficacy_survey():
    return _survey(TRAINING_EFFICACY_QUESTION, TRAINING_EFFICACY_OPTIONS)


@router.get("/surveys/platform-satisfaction", response_model=SurveyOut)
async def platform_survey():
    return _survey(PLATFORM_SATISFACTION_QUESTION, PLATFORM_SATISFACTION_OPTIONS)


@router.get("/platform-satisfaction/status/{cpf}", response_model=SatisfactionStatus)
async def get_satisfaction_status(
    cpf: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    cpf = normalize_cpf(cpf)
    ensure_self_or_instructor(current_user, cpf)
    return await satisfaction_status(db, cpf)


@router.post(
    "/platform-satisfaction",
    response_model=SatisfactionOut,
    status_code=status.HTTP_201_CREATED,
)
async def submit_satisfaction(
    data: SatisfactionCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_self_or_instructor(current_user, data.cpf)
    return await record_satisfaction(db, data)

import logging
from dataclasses import asdict, dataclass

import httpx

from gtreinamento.client.api import PortalApiClient
from gtreinamento.client.errors import ApiError, ValidationError
from gtreinamento.client.storage import PROFILE_KEY, PROOF_TOKEN_KEY, THEME_KEY, LocalStore
from gtreinamento.utils.cpf import is_valid_cpf_length, normalize_cpf

logger = logging.getLogger(__name__)

INSTRUCTOR_ROLES = {"INSTRUTOR", "ADMIN", "instrutor", "admin"}
THEMES = ("light", "dark")


@dataclass
class Profile:
    cpf: str
    nome: str
    cargo: str | None = None
    setor: str | None = None
    permissao: str | None = None
    instrutor: bool = False
    obra_codigo: str | None = None
    obra_nome: str | None = None


def profile_from_user(user: dict) -> Profile:
    """Local profile snapshot of a ``/auth/me`` payload."""
    permissao = user.get("permissao")
    return Profile(
        cpf=normalize_cpf(user.get("cpf")),
        nome=user.get("nome") or "",
        cargo=user.get("cargo"),
        setor=user.get("setor"),
        permissao=permissao,
        instrutor=bool(user.get("instrutor")) or permissao in INSTRUCTOR_ROLES,
        obra_codigo=user.get("obra_codigo"),
        obra_nome=user.get("obra_nome"),
    )


class PortalSession:
    """Signed-in employee on this device: profile snapshot, theme and prompts."""

    def __init__(self, api: PortalApiClient, store: LocalStore):
        self.api = api
        self.store = store

    @property
    def profile(self) -> Profile | None:
        data = self.store.get(PROFILE_KEY)
        if not isinstance(data, dict):
            return None
        try:
            return Profile(**data)
        except TypeError:
            return None

    def _save_profile(self, profile: Profile) -> None:
        self.store.set(PROFILE_KEY, asdict(profile))

    async def login(self, cpf: str, password: str) -> Profile:
        digits = normalize_cpf(cpf)
        if not is_valid_cpf_length(digits):
            raise ValidationError("CPF deve conter 11 dígitos.")
        if not password:
            raise ValidationError("Informe a senha.")
        payload = await self.api.login(digits, password)
        profile = profile_from_user(payload["user"])
        self._save_profile(profile)
        return profile

    async def first_access(self, cpf: str, dt_nascimento: str, password: str) -> Profile:
        digits = normalize_cpf(cpf)
        if not is_valid_cpf_length(digits):
            raise ValidationError("CPF deve conter 11 dígitos.")
        payload = await self.api.first_access(digits, dt_nascimento, password)
        profile = profile_from_user(payload["user"])
        self._save_profile(profile)
        return profile

    async def logout(self) -> None:
        try:
            await self.api.logout()
        except (ApiError, httpx.HTTPError) as exc:
            logger.info("Logout no servidor falhou: %s", exc)
        self.store.delete(PROFILE_KEY)
        self.store.delete(PROOF_TOKEN_KEY)

    async def refresh_instructor_flag(self) -> bool:
        """Re-read the instructor flag from the server; keeps the cached one on failure."""
        profile = self.profile
        try:
            fresh = profile_from_user(await self.api.me())
        except (ApiError, httpx.HTTPError) as exc:
            logger.warning("Não foi possível atualizar o perfil: %s", exc)
            return bool(profile and profile.instrutor)
        self._save_profile(fresh)
        return fresh.instrutor

    async def should_show_satisfaction_prompt(self) -> bool:
        profile = self.profile
        if profile is None:
            return False
        try:
            status = await self.api.satisfaction_status(profile.cpf)
        except (ApiError, httpx.HTTPError) as exc:
            logger.warning("Consulta de satisfação falhou: %s", exc)
            return False
        return bool(status.get("deve_exibir"))

    async def submit_satisfaction(self, nivel: int) -> dict:
        profile = self.profile
        if profile is None:
            raise ValidationError("Sessão não iniciada.")
        if nivel not in range(1, 6):
            raise ValidationError("Selecione um nível de satisfação entre 1 e 5.")
        return await self.api.submit_satisfaction(profile.cpf, nivel)

    @property
    def theme(self) -> str:
        theme = self.store.get(THEME_KEY)
        return theme if theme in THEMES else "light"

    def set_theme(self, theme: str) -> None:
        if theme not in THEMES:
            raise ValidationError(f"Tema inválido: {theme}")
        self.store.set(THEME_KEY, theme)

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone

import httpx

from gtreinamento.client.api import PortalApiClient
from gtreinamento.client.errors import ApiError
from gtreinamento.client.storage import LAST_WATCHED_KEY, LocalStore
from gtreinamento.utils.cpf import is_valid_cpf_length, normalize_cpf

logger = logging.getLogger(__name__)

# Minimum playback advance between two progress writes
PROGRESS_WRITE_INTERVAL_SECONDS = 10


@dataclass
class LastWatched:
    cpf: str
    video_id: str
    video_versao: int
    trilha_id: str
    path_video: str | None = None
    titulo: str | None = None
    current_time_sec: float | None = None
    duration_sec: float | None = None
    updated_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class ProgressTracker:
    """Completion recording plus the device-local "continue watching" cache."""

    def __init__(self, api: PortalApiClient, store: LocalStore):
        self.api = api
        self.store = store
        self._last_written: dict[tuple[str, str], float] = {}

    def _entries(self) -> dict:
        entries = self.store.get(LAST_WATCHED_KEY)
        return entries if isinstance(entries, dict) else {}

    def last_watched(self, cpf: str) -> LastWatched | None:
        digits = normalize_cpf(cpf)
        if not is_valid_cpf_length(digits):
            return None
        entry = self._entries().get(digits)
        if not isinstance(entry, dict):
            return None
        try:
            return LastWatched(**entry)
        except TypeError:
            return None

    def update_position(
        self,
        cpf: str,
        *,
        video_id: str,
        video_versao: int,
        trilha_id: str,
        current_time_sec: float,
        duration_sec: float | None = None,
        path_video: str | None = None,
        titulo: str | None = None,
    ) -> bool:
        """Remember the playback position; returns whether it was written."""
        digits = normalize_cpf(cpf)
        if not is_valid_cpf_length(digits):
            return False
        key = (digits, str(video_id))
        previous = self._last_written.get(key)
        if previous is not None and abs(current_time_sec - previous) < PROGRESS_WRITE_INTERVAL_SECONDS:
            return False

        entries = self._entries()
        entries[digits] = asdict(
            LastWatched(
                cpf=digits,
                video_id=str(video_id),
                video_versao=video_versao,
                trilha_id=str(trilha_id),
                path_video=path_video,
                titulo=titulo,
                current_time_sec=current_time_sec,
                duration_sec=duration_sec,
            )
        )
        self.store.set(LAST_WATCHED_KEY, entries)
        self._last_written[key] = current_time_sec
        return True

    def clear_last_watched(self, cpf: str, video_id: str, video_versao: int | None = None) -> None:
        digits = normalize_cpf(cpf)
        if not is_valid_cpf_length(digits):
            return
        entries = self._entries()
        current = entries.get(digits)
        if not isinstance(current, dict) or current.get("video_id") != str(video_id):
            return
        if video_versao is not None and current.get("video_versao") != video_versao:
            return
        del entries[digits]
        self.store.set(LAST_WATCHED_KEY, entries)
        self._last_written.pop((digits, str(video_id)), None)

    async def record_completion(
        self,
        cpf: str,
        material_id: str,
        versao: int = 1,
        *,
        user: dict[str, str] | None = None,
    ) -> datetime | None:
        """Record a finished video. ``None`` means "not recorded"; calling again is safe."""
        try:
            payload = await self.api.complete_material(cpf, material_id, versao, user=user)
        except (ApiError, httpx.HTTPError) as exc:
            logger.warning("Conclusão não registrada: cpf=%s material=%s: %s", cpf, material_id, exc)
            return None
        self.clear_last_watched(cpf, material_id, versao)
        return datetime.fromisoformat(payload["completed_at"])

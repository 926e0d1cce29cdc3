import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

PROFILE_KEY = "gestao-treinamento:profile"
THEME_KEY = "gestao-treinamento:theme"
LAST_WATCHED_KEY = "gtreinamento:last-watched:v1"
PROOF_TOKEN_KEY = "collectiveProofToken"


class LocalStore:
    """Device-local key/value state kept in a JSON file.

    With ``path=None`` the values live in memory only.
    """

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path) if path else None
        self._data: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        if not self.path or not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError):
            logger.warning("Estado local ilegível em %s; ignorando", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _flush(self) -> None:
        if not self.path:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(self._data, f, ensure_ascii=False)
        os.replace(tmp, self.path)

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._flush()

    def delete(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self._flush()

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from platformdirs import user_data_dir

logger = logging.getLogger(__name__)

JsonValue = Any


class StateStore(Protocol):
    """Persistence port for register-local state, one JSON value per namespace."""

    def load(self, namespace: str) -> JsonValue | None: ...

    def save(self, namespace: str, value: JsonValue) -> bool: ...

    def delete(self, namespace: str) -> None: ...

    def size(self, namespace: str) -> int: ...


def _encode(value: JsonValue) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


@dataclass
class MemoryStore:
    data: dict[str, str] = field(default_factory=dict)

    def load(self, namespace: str) -> JsonValue | None:
        raw = self.data.get(namespace)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.error("corrupt state in namespace %s, discarding", namespace)
            return None

    def save(self, namespace: str, value: JsonValue) -> bool:
        self.data[namespace] = _encode(value)
        return True

    def delete(self, namespace: str) -> None:
        self.data.pop(namespace, None)

    def size(self, namespace: str) -> int:
        raw = self.data.get(namespace)
        return len(raw.encode("utf-8")) if raw is not None else 0


@dataclass
class JsonFileStore:
    app_name: str = "register-core"
    register_id: str = "register-1"
    base_dir: str | Path | None = None

    def _dir(self) -> Path:
        base = Path(self.base_dir) if self.base_dir else Path(user_data_dir(self.app_name, "RegisterCore"))
        path = base / self.register_id
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _path(self, namespace: str) -> Path:
        return self._dir() / f"{namespace}.json"

    def load(self, namespace: str) -> JsonValue | None:
        try:
            path = self._path(namespace)
            if not path.exists():
                return None
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.error("corrupt state file for namespace %s, discarding", namespace)
            return None
        except OSError:
            logger.exception("failed to read state for namespace %s", namespace)
            return None

    def save(self, namespace: str, value: JsonValue) -> bool:
        try:
            directory = self._dir()
            fd, tmp_name = tempfile.mkstemp(dir=directory, prefix=f".{namespace}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fp:
                    fp.write(_encode(value))
                    fp.flush()
                    os.fsync(fp.fileno())
                os.replace(tmp_name, directory / f"{namespace}.json")
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError:
            logger.exception("failed to persist state for namespace %s", namespace)
            return False
        return True

    def delete(self, namespace: str) -> None:
        try:
            self._path(namespace).unlink(missing_ok=True)
        except OSError:
            logger.exception("failed to delete state for namespace %s", namespace)

    def size(self, namespace: str) -> int:
        try:
            path = self._path(namespace)
            return path.stat().st_size if path.exists() else 0
        except OSError:
            return 0

from __future__ import annotations

from pathlib import Path


class MessageIdStore:
    """Persists the published message id in a small text file so restarts edit, not repost."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def try_read(self) -> str | None:
        try:
            with self.path.open("r", encoding="utf-8") as f:
                value = f.read().strip()
        except FileNotFoundError:
            return None
        return value or None

    def write(self, message_id: str) -> None:
        tmp = self.path.with_name(f"{self.path.name}.tmp")
        with tmp.open("w", encoding="utf-8") as f:
            f.write(str(message_id).strip())
        tmp.replace(self.path)

    def delete(self) -> None:
        self.path.unlink(missing_ok=True)

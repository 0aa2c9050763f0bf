"""Template store collaborators keyed by template id."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from core.utils.errors import TemplateNotFoundError


class TemplateStore(Protocol):
    """Read-only source of template package bytes."""

    def load(self, template_id: str) -> bytes:
        """Return package bytes or raise ``TemplateNotFoundError``."""


class DirectoryTemplateStore:
    """Serve ``<root>/<template_id>`` files from a local directory."""

    def __init__(self, root: Path) -> None:
        self._root = root

    @property
    def root(self) -> Path:
        return self._root

    def load(self, template_id: str) -> bytes:
        path = self._path_for(template_id)
        try:
            return path.read_bytes()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as exc:
            raise TemplateNotFoundError(template_id) from exc

    def exists(self, template_id: str) -> bool:
        try:
            return self._path_for(template_id).is_file()
        except TemplateNotFoundError:
            return False

    def list_templates(self) -> list[str]:
        if not self._root.is_dir():
            return []
        return sorted(path.name for path in self._root.glob("*.docx") if path.is_file())

    def _path_for(self, template_id: str) -> Path:
        # Template ids are bare file names; anything path-like is not in the store.
        if not template_id or Path(template_id).name != template_id or template_id in {".", ".."}:
            raise TemplateNotFoundError(template_id)
        return self._root / template_id

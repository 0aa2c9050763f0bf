"""In-memory view of a zipped word-processing template package."""

from __future__ import annotations

import io
import re
import zipfile
from collections.abc import Iterator

from core.utils.errors import TemplateError

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

_CONTENT_PART_RE = re.compile(r"^word/(?:document|header[0-9]*|footer[0-9]*)\.xml$")


def is_content_part(name: str) -> bool:
    """Return True for the body, header and footer parts."""

    return _CONTENT_PART_RE.match(name) is not None


class TemplatePackage:
    """Zip members held in memory; only content parts are rewritable.

    Each instance owns its bytes, so concurrent requests never share a
    mutable package even when they load the same template.
    """

    def __init__(self, members: list[tuple[zipfile.ZipInfo, bytes]]) -> None:
        self._members = members

    @classmethod
    def from_bytes(cls, data: bytes) -> TemplatePackage:
        try:
            with zipfile.ZipFile(io.BytesIO(data), mode="r") as archive:
                members = [(info, archive.read(info)) for info in archive.infolist()]
        except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError) as exc:
            raise TemplateError(
                "Template is not a valid .docx package",
                detail={"error": str(exc)},
            ) from exc
        return cls(members)

    def part_names(self) -> list[str]:
        return [info.filename for info, _ in self._members]

    def content_part_names(self) -> list[str]:
        return [name for name in self.part_names() if is_content_part(name)]

    def iter_content_parts(self) -> Iterator[tuple[str, str]]:
        """Yield ``(part_name, xml_text)`` for body/header/footer parts."""

        for info, data in self._members:
            if not is_content_part(info.filename):
                continue
            try:
                text = data.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise TemplateError(
                    f"Template part is not UTF-8 XML: {info.filename}",
                    detail={"part": info.filename},
                ) from exc
            yield info.filename, text

    def read(self, name: str) -> bytes:
        for info, data in self._members:
            if info.filename == name:
                return data
        raise KeyError(name)

    def replace_part(self, name: str, text: str) -> None:
        if not is_content_part(name):
            raise ValueError(f"Only content parts can be rewritten: {name}")
        for position, (info, _) in enumerate(self._members):
            if info.filename == name:
                self._members[position] = (info, text.encode("utf-8"))
                return
        raise KeyError(name)

    def to_bytes(self) -> bytes:
        """Reserialize members in original order and compression."""

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, mode="w") as archive:
            for info, data in self._members:
                archive.writestr(info, data)
        return buffer.getvalue()

from __future__ import annotations

import asyncio
import logging
import xml.etree.ElementTree as ET
import zipfile
from html.parser import HTMLParser
from pathlib import Path, PurePosixPath
from typing import List

from ..errors import ExtractionError, InitializationError
from ..models import PageText
from .base import PageTextProvider

logger = logging.getLogger(__name__)


class EpubPageProvider(PageTextProvider):
    """Serves each readable spine chapter of an EPUB archive as one page."""

    def __init__(self, epub_path: Path) -> None:
        self._path = Path(epub_path)
        self._chapters: List[str] = []

    @property
    def chapters(self) -> List[str]:
        return list(self._chapters)

    async def init(self) -> int:
        self._chapters = await asyncio.to_thread(locate_chapters, self._path)
        logger.info("Opened EPUB %s with %s chapters", self._path, len(self._chapters))
        return len(self._chapters)

    async def fetch_page(self, ordinal: int) -> PageText:
        if ordinal < 1 or ordinal > len(self._chapters):
            raise ExtractionError(ordinal, f"Chapter {ordinal} is out of range.")
        rel_path = self._chapters[ordinal - 1]
        text = await asyncio.to_thread(self._read_chapter, ordinal, rel_path)
        return PageText(text=text, layout_ok=bool(text))

    def _read_chapter(self, ordinal: int, rel_path: str) -> str:
        try:
            with zipfile.ZipFile(self._path, "r") as zf:
                raw_html = zf.read(rel_path).decode("utf-8", errors="ignore")
        except (KeyError, OSError, zipfile.BadZipFile) as exc:
            raise ExtractionError(
                ordinal, f"Unable to read chapter {rel_path}"
            ) from exc
        return html_to_text(raw_html)


def locate_chapters(epub_path: Path) -> List[str]:
    """Return the archive paths of readable chapters in reading order."""
    if not epub_path.exists():
        raise InitializationError(f"EPUB file not found: {epub_path}")

    try:
        with zipfile.ZipFile(epub_path, "r") as zf:
            opf_path = _locate_opf(zf)
            chapters = _spine_items(zf, opf_path)
            if not chapters:
                chapters = _fallback_text_items(zf)
            names = set(zf.namelist())
            return [path for path in chapters if path in names]
    except zipfile.BadZipFile as exc:
        raise InitializationError(f"Invalid EPUB archive: {epub_path}") from exc


def _locate_opf(zf: zipfile.ZipFile) -> str:
    try:
        container_xml = zf.read("META-INF/container.xml")
    except KeyError as exc:
        raise InitializationError("EPUB missing META-INF/container.xml") from exc
    try:
        root = ET.fromstring(container_xml)
    except ET.ParseError as exc:
        raise InitializationError("Unable to parse container.xml") from exc
    rootfile = root.find(".//{*}rootfile")
    if rootfile is None:
        raise InitializationError("container.xml missing rootfile element")
    opf_path = rootfile.attrib.get("full-path")
    if not opf_path:
        raise InitializationError("rootfile missing full-path attribute")
    return opf_path


def _spine_items(zf: zipfile.ZipFile, opf_path: str) -> List[str]:
    try:
        root = ET.fromstring(zf.read(opf_path))
    except (KeyError, ET.ParseError):
        return []

    manifest: dict[str, tuple[str, str]] = {}
    manifest_el = root.find(".//{*}manifest")
    if manifest_el is not None:
        for item in manifest_el.findall("{*}item"):
            item_id = item.attrib.get("id")
            href = item.attrib.get("href")
            if item_id and href:
                manifest[item_id] = (href, item.attrib.get("media-type", "").lower())

    chapters: List[str] = []
    spine_el = root.find(".//{*}spine")
    if spine_el is None:
        return chapters
    for itemref in spine_el.findall("{*}itemref"):
        entry = manifest.get(itemref.attrib.get("idref", ""))
        if entry is None:
            continue
        href, media_type = entry
        if _is_text_media(media_type):
            chapters.append(_resolve_href(opf_path, href))
    return chapters


def _fallback_text_items(zf: zipfile.ZipFile) -> List[str]:
    text_suffixes = {".xhtml", ".html", ".htm", ".txt"}
    return sorted(
        name
        for name in zf.namelist()
        if PurePosixPath(name).suffix.lower() in text_suffixes
    )


def _resolve_href(opf_path: str, href: str) -> str:
    base = PurePosixPath(opf_path).parent
    if str(base) in ("", "."):
        return PurePosixPath(href).as_posix()
    return (base / PurePosixPath(href)).as_posix()


def _is_text_media(media_type: str) -> bool:
    return media_type.startswith(("application/xhtml", "text/html", "text/plain"))


class _HTMLTextExtractor(HTMLParser):
    """Flattens chapter markup; block elements become paragraph breaks."""

    BLOCK_TAGS = {
        "p",
        "div",
        "li",
        "section",
        "article",
        "blockquote",
        "h1",
        "h2",
        "h3",
        "h4",
        "h5",
        "h6",
    }
    SKIP_TAGS = {"script", "style", "head"}

    def __init__(self) -> None:
        super().__init__()
        self._chunks: list[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag in self.SKIP_TAGS:
            self._skip_depth += 1
        elif tag == "br":
            self._chunks.append("\n")

    def handle_endtag(self, tag: str) -> None:
        if tag in self.SKIP_TAGS:
            self._skip_depth = max(0, self._skip_depth - 1)
        elif tag in self.BLOCK_TAGS:
            self._chunks.append("\n\n")

    def handle_data(self, data: str) -> None:
        if self._skip_depth:
            return
        text = " ".join(data.split())
        if text:
            if self._chunks and not self._chunks[-1].endswith((" ", "\n")):
                self._chunks.append(" ")
            self._chunks.append(text)

    def get_text(self) -> str:
        paragraphs = [
            " ".join(block.split()) for block in "".join(self._chunks).split("\n\n")
        ]
        return "\n\n".join(p for p in paragraphs if p)


def html_to_text(html: str) -> str:
    parser = _HTMLTextExtractor()
    parser.feed(html)
    parser.close()
    return parser.get_text()

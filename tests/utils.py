from __future__ import annotations

import asyncio
import zipfile
from collections import Counter
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Sequence

from rsvp_stream.errors import ExtractionError, InitializationError
from rsvp_stream.models import PageText
from rsvp_stream.providers.base import PageTextProvider


def write_minimal_epub(
    path: Path, chapters: list[str], include_spine: bool = True
) -> None:
    """Create a minimal EPUB file with the provided XHTML chapters."""
    container_xml = """<?xml version="1.0"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""
    manifest_items = []
    spine_items = []
    chapter_files = []
    for idx, chapter in enumerate(chapters, start=1):
        href = f"text/ch{idx:02d}.xhtml"
        manifest_items.append(
            f'<item id="ch{idx}" href="{href}" media-type="application/xhtml+xml"/>'
        )
        spine_items.append(f'<itemref idref="ch{idx}"/>')
        chapter_files.append((f"OEBPS/{href}", chapter))
    spine_block = (
        "<spine>" + "".join(spine_items) + "</spine>" if include_spine else "<spine/>"
    )
    opf = f"""<?xml version="1.0" encoding="utf-8"?>
<package version="3.0" xmlns="http://www.idpf.org/2007/opf">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
    <dc:title>Reader fixture</dc:title>
  </metadata>
  <manifest>
    {''.join(manifest_items)}
  </manifest>
  {spine_block}
</package>
"""
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr(
            "mimetype", "application/epub+zip", compress_type=zipfile.ZIP_STORED
        )
        zf.writestr("META-INF/container.xml", container_xml)
        zf.writestr("OEBPS/content.opf", opf)
        for file_path, body in chapter_files:
            zf.writestr(file_path, body)


def xhtml(*paragraphs: str) -> str:
    body = "".join(f"<p>{p}</p>" for p in paragraphs)
    return f"<html xmlns='http://www.w3.org/1999/xhtml'><body>{body}</body></html>"


class FakeTimer:
    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    @property
    def delay_ms(self) -> int:
        return round(self.delay * 1000)

    def cancel(self) -> None:
        self.cancelled = True


class FakeTimers:
    """Stand-in for ``loop.call_later`` that only fires when told to."""

    def __init__(self) -> None:
        self.created: List[FakeTimer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(delay, callback)
        self.created.append(timer)
        return timer

    @property
    def pending(self) -> List[FakeTimer]:
        return [t for t in self.created if not t.cancelled and not t.fired]

    def fire_next(self) -> FakeTimer:
        pending = self.pending
        assert pending, "no armed timer"
        timer = pending[0]
        timer.fired = True
        timer.callback()
        return timer

    def fire_all(self, limit: int = 1000) -> int:
        fired = 0
        while self.pending and fired < limit:
            self.fire_next()
            fired += 1
        return fired


class MemoryPageProvider(PageTextProvider):
    """In-memory pages with optional failures and per-page gates."""

    def __init__(
        self,
        pages: Sequence[str],
        *,
        failures: Iterable[int] = (),
        gates: Mapping[int, asyncio.Event] | None = None,
        init_error: Exception | None = None,
        total_pages: int | None = None,
    ) -> None:
        self.pages = list(pages)
        self.failures = set(failures)
        self.gates: Dict[int, asyncio.Event] = dict(gates or {})
        self.init_error = init_error
        self.total_pages = len(self.pages) if total_pages is None else total_pages
        self.fetch_counts: Counter[int] = Counter()
        self.fetch_order: List[int] = []
        self.closed = False

    async def init(self) -> int:
        if self.init_error is not None:
            raise self.init_error
        return self.total_pages

    async def fetch_page(self, ordinal: int) -> PageText:
        self.fetch_counts[ordinal] += 1
        self.fetch_order.append(ordinal)
        gate = self.gates.get(ordinal)
        if gate is not None:
            await gate.wait()
        else:
            await asyncio.sleep(0)
        if ordinal in self.failures:
            raise ExtractionError(ordinal, f"page {ordinal} is unreadable")
        return PageText(text=self.pages[ordinal - 1])

    async def close(self) -> None:
        self.closed = True


class BrokenProvider(MemoryPageProvider):
    def __init__(self) -> None:
        super().__init__([], init_error=InitializationError("cannot open"))


class MemoryCache:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.saved: List[Dict[str, Any]] = []

    def save(self, name: str, text: str, metadata: Mapping[str, Any]) -> None:
        if self.fail:
            raise OSError("disk full")
        self.saved.append({"name": name, "text": text, **metadata})

    def find_by_fingerprint(self, fingerprint: str) -> Dict[str, Any] | None:
        return None

    def recent(self, limit: int) -> List[Dict[str, Any]]:
        return self.saved[-limit:]


def words(count: int, prefix: str = "w") -> str:
    return " ".join(f"{prefix}{i}" for i in range(count))


async def settle(rounds: int = 20) -> None:
    """Let pending callbacks and zero-delay sleeps run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def write_minimal_pdf(path: Path, pages: list[str]) -> None:
    """Write a PDF with one line of Helvetica text per page ("" for a blank page)."""
    page_ids = [4 + 2 * idx for idx in range(len(pages))]
    kids = " ".join(f"{page_id} 0 R" for page_id in page_ids)
    objects: List[bytes] = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        f"<< /Type /Pages /Kids [{kids}] /Count {len(pages)} >>".encode(),
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    for page_id, text in zip(page_ids, pages):
        objects.append(
            (
                "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
                "/Resources << /Font << /F1 3 0 R >> >> "
                f"/Contents {page_id + 1} 0 R >>"
            ).encode()
        )
        stream = f"BT /F1 12 Tf 72 720 Td ({text}) Tj ET".encode() if text else b""
        objects.append(
            b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream"
        )

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"
    xref_offset = len(out)
    out += b"xref\n0 %d\n" % (len(objects) + 1)
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\n" % (len(objects) + 1)
    out += b"startxref\n%d\n%%%%EOF\n" % xref_offset
    path.write_bytes(bytes(out))

from __future__ import annotations

import zipfile
from pathlib import Path

import pytest

from rsvp_stream.errors import ExtractionError, InitializationError
from rsvp_stream.providers.epub import EpubPageProvider, html_to_text
from tests.utils import write_minimal_epub, xhtml


@pytest.mark.asyncio
async def test_epub_chapters_follow_the_spine(tmp_path: Path):
    """Each spine chapter is served as one page, in reading order."""
    epub_path = tmp_path / "book.epub"
    write_minimal_epub(
        epub_path,
        chapters=[xhtml("Hello crew.", "Second paragraph."), xhtml("Chapter two.")],
    )
    provider = EpubPageProvider(epub_path)

    assert await provider.init() == 2
    first = await provider.fetch_page(1)
    second = await provider.fetch_page(2)

    assert first.text == "Hello crew.\n\nSecond paragraph."
    assert second.text == "Chapter two."
    assert provider.chapters == ["OEBPS/text/ch01.xhtml", "OEBPS/text/ch02.xhtml"]


@pytest.mark.asyncio
async def test_epub_falls_back_without_spine(tmp_path: Path):
    epub_path = tmp_path / "fallback.epub"
    write_minimal_epub(
        epub_path, chapters=[xhtml("Fallback only.")], include_spine=False
    )
    provider = EpubPageProvider(epub_path)

    assert await provider.init() == 1
    assert (await provider.fetch_page(1)).text == "Fallback only."


@pytest.mark.asyncio
async def test_epub_missing_file_fails_init(tmp_path: Path):
    with pytest.raises(InitializationError):
        await EpubPageProvider(tmp_path / "nope.epub").init()


@pytest.mark.asyncio
async def test_epub_without_container_fails_init(tmp_path: Path):
    epub_path = tmp_path / "broken.epub"
    with zipfile.ZipFile(epub_path, "w") as zf:
        zf.writestr("mimetype", "application/epub+zip")
    with pytest.raises(InitializationError):
        await EpubPageProvider(epub_path).init()


@pytest.mark.asyncio
async def test_epub_rejects_non_zip_files(tmp_path: Path):
    epub_path = tmp_path / "plain.epub"
    epub_path.write_text("not a zip", encoding="utf-8")
    with pytest.raises(InitializationError):
        await EpubPageProvider(epub_path).init()


@pytest.mark.asyncio
async def test_epub_out_of_range_chapter_is_an_extraction_error(tmp_path: Path):
    epub_path = tmp_path / "book.epub"
    write_minimal_epub(epub_path, chapters=[xhtml("Only one.")])
    provider = EpubPageProvider(epub_path)
    await provider.init()

    with pytest.raises(ExtractionError) as excinfo:
        await provider.fetch_page(2)
    assert excinfo.value.ordinal == 2


def test_html_to_text_skips_scripts_and_keeps_paragraphs():
    html = (
        "<html><head><title>T</title><style>p {}</style></head><body>"
        "<h1>Title</h1><script>var x;</script><p>Some   <em>spaced</em>\ntext.</p>"
        "</body></html>"
    )
    assert html_to_text(html) == "Title\n\nSome spaced text."

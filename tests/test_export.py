from lyricsync.lrc.export import export_lrc, export_lrcx
from lyricsync.lrc.model import DocumentMetadata, LyricsDocument, LyricsLine
from lyricsync.lrc.parse import parse_lyrics


def _doc() -> LyricsDocument:
    return LyricsDocument(
        lines=(
            LyricsLine(0, "a", {"tr:en": "A"}),
            LyricsLine(61_230, "b"),
        ),
        offset_ms=-200,
        metadata=DocumentMetadata(title="T", artist="R"),
    )


def test_export_lrc_basic():
    out = export_lrc(_doc())
    assert out.splitlines() == [
        "[ar:R]",
        "[ti:T]",
        "[offset:-200]",
        "[00:00.00]a",
        "[01:01.23]b",
    ]


def test_export_lrcx_writes_attachment_after_its_line():
    lines = export_lrcx(_doc(), include_tags=False).splitlines()
    assert lines == ["[offset:-200]", "[00:00.00]a", "[00:00.00][tr:en]A", "[01:01.23]b"]


def test_lrcx_reparses_with_translation_and_offset():
    doc = parse_lyrics(export_lrcx(_doc()))
    assert doc.offset_ms == -200
    assert doc.lines[0].translation("en") == "A"
    assert doc.metadata.title == "T"

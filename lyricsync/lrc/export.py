from __future__ import annotations

from .model import LyricsDocument


def _fmt_lrc_time(ms: int) -> str:
    m, rem = divmod(max(ms, 0), 60_000)
    s, ms2 = divmod(rem, 1_000)
    # keep 2 decimals for compatibility
    return f"{m:02d}:{s:02d}.{ms2 // 10:02d}"


def _header(doc: LyricsDocument, include_tags: bool) -> list[str]:
    out: list[str] = []
    if include_tags:
        tags = dict(doc.metadata.tags)
        if doc.metadata.title:
            tags["ti"] = doc.metadata.title
        if doc.metadata.artist:
            tags["ar"] = doc.metadata.artist
        for k in sorted(tags.keys()):
            out.append(f"[{k}:{tags[k]}]")
    if doc.offset_ms:
        out.append(f"[offset:{doc.offset_ms}]")
    return out


def export_lrc(doc: LyricsDocument, include_tags: bool = True) -> str:
    out = _header(doc, include_tags)
    for ln in doc.lines:
        out.append(f"[{_fmt_lrc_time(ln.position_ms)}]{ln.content}")
    return "\n".join(out) + ("\n" if out else "")


def export_lrcx(doc: LyricsDocument, include_tags: bool = True) -> str:
    """
    LRC plus one `[time][key]value` line per attachment, right after its line.
    """
    out = _header(doc, include_tags)
    for ln in doc.lines:
        stamp = _fmt_lrc_time(ln.position_ms)
        out.append(f"[{stamp}]{ln.content}")
        for key in sorted(ln.attachments):
            out.append(f"[{stamp}][{key}]{ln.attachments[key]}")
    return "\n".join(out) + ("\n" if out else "")

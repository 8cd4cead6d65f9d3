from __future__ import annotations

from dataclasses import dataclass
import re

from .model import DocumentMetadata, LyricsDocument, LyricsLine, TRANSLATION_PREFIX

_TS_RE = re.compile(r"\[(\d{1,3}):(\d{2})(?:[.:](\d{1,3}))?\]")  # [mm:ss] / [mm:ss.xx] / [mm:ss.xxx]
_OFFSET_RE = re.compile(r"^\[offset:\s*([+-]?\d+)\s*\]\s*$", re.IGNORECASE)
_TAG_RE = re.compile(r"^\[([a-zA-Z]{1,8}):(.*)\]\s*$")
# LRCX attachment right after the timestamps: [00:01.00][tr:en]text
_ATTACHMENT_RE = re.compile(r"^\[(tr:[\w-]+|tt)\](.*)$")


class LrcParseError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class LrcParseStats:
    lines_total: int
    lines_with_timestamps: int
    lines_ignored: int
    attachments_total: int
    events_total: int


def _parse_ts_to_ms(m: int, s: int, frac: str | None) -> int:
    if not (0 <= s <= 59):
        raise LrcParseError(f"Invalid seconds: {s}")
    if frac is None:
        ms = 0
    else:
        # "2" -> 200ms, "23" -> 230ms, "234" -> 234ms
        ms = int(frac.ljust(3, "0")[:3])
    return (m * 60 + s) * 1000 + ms


def parse_lyrics(text: str) -> LyricsDocument:
    """
    Supported:
    - [mm:ss], [mm:ss.xx], [mm:ss.xxx]
    - multiple timestamps per line
    - [offset:+/-ms], kept on the document instead of shifting lines
    - basic tags: [ar:], [ti:], [al:], ...
    - LRCX attachments: [mm:ss.xx][tr:lang]translation

    Raises LrcParseError when the text holds no timed line at all.
    """
    doc, _stats = parse_lyrics_with_stats(text)
    return doc


def parse_lyrics_with_stats(text: str) -> tuple[LyricsDocument, LrcParseStats]:
    offset_ms = 0
    tags: dict[str, str] = {}
    lines: list[LyricsLine] = []
    # position -> index into `lines` of the last plain line at that position
    by_position: dict[int, int] = {}

    total = 0
    lines_with_ts = 0
    ignored = 0
    attachments = 0

    for raw in text.splitlines():
        total += 1
        line = raw.lstrip("\ufeff").rstrip()
        if not line.strip():
            ignored += 1
            continue

        off = _OFFSET_RE.match(line)
        if off:
            offset_ms = int(off.group(1))
            continue

        tag = _TAG_RE.match(line)
        if tag and not _TS_RE.match(line):
            k = tag.group(1).strip().lower()
            v = tag.group(2).strip()
            if k and v:
                tags[k] = v
            continue

        ts = []
        pos = 0
        while True:
            m = _TS_RE.match(line, pos)
            if not m:
                break
            ts.append(m)
            pos = m.end()
        if not ts:
            ignored += 1
            continue

        lines_with_ts += 1
        payload = line[pos:]

        att = _ATTACHMENT_RE.match(payload)
        if att:
            key, value = att.group(1), att.group(2).strip()
            attachments += 1
            for m in ts:
                t_ms = _parse_ts_to_ms(int(m.group(1)), int(m.group(2)), m.group(3))
                idx = by_position.get(t_ms)
                if idx is None:
                    # orphan attachment, nothing to hang it on
                    continue
                target = lines[idx]
                merged = {**target.attachments, key: value}
                lines[idx] = LyricsLine(target.position_ms, target.content, merged)
            continue

        content = payload.strip()
        for m in ts:
            t_ms = _parse_ts_to_ms(int(m.group(1)), int(m.group(2)), m.group(3))
            by_position[t_ms] = len(lines)
            lines.append(LyricsLine(position_ms=t_ms, content=content))

    if not lines:
        raise LrcParseError("No timed lyrics lines found")

    languages: list[str] = []
    for ln in lines:
        for k in ln.attachments:
            if k.startswith(TRANSLATION_PREFIX):
                lang = k[len(TRANSLATION_PREFIX):]
                if lang not in languages:
                    languages.append(lang)

    metadata = DocumentMetadata(
        title=tags.get("ti", ""),
        artist=tags.get("ar", ""),
        translation_languages=languages,
        tags=tags,
    )
    doc = LyricsDocument(lines=tuple(lines), offset_ms=offset_ms, metadata=metadata)
    stats = LrcParseStats(
        lines_total=total,
        lines_with_timestamps=lines_with_ts,
        lines_ignored=ignored,
        attachments_total=attachments,
        events_total=len(doc.lines),
    )
    return doc, stats

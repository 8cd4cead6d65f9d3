from __future__ import annotations

from lyricsync.lrc.parse import LrcParseError

# Malformed local file or imported text.
ParseError = LrcParseError


class LyricsError(RuntimeError):
    """Base for errors surfaced to the user, with a hint on what to do next."""

    default_message = "Lyrics error"
    default_suggestion = ""

    def __init__(self, message: str | None = None, suggestion: str | None = None):
        self.message = message or self.default_message
        self.suggestion = suggestion if suggestion is not None else self.default_suggestion
        super().__init__(self.message)


class InvalidFormat(LyricsError):
    default_message = "Invalid lyric file"
    default_suggestion = "Please try another one."


class NoActiveTrack(LyricsError):
    default_message = "No music playing"
    default_suggestion = "Play a music and try again."


class CandidateRejected(LyricsError):
    default_message = "Candidate rejected"


class StaleResult(CandidateRejected):
    default_message = "Result belongs to a superseded search"


class NotMatched(CandidateRejected):
    default_message = "Result does not match the track"


class NotBetter(CandidateRejected):
    default_message = "Result is not better than the current lyrics"


class SearchTimeout(LyricsError):
    default_message = "Search timed out"


class ResourceAccessDenied(LyricsError):
    default_message = "Access to lyrics location denied"
    default_suggestion = "Check the permissions of the lyrics folder."


class WriteBackUnsupported(LyricsError):
    default_message = "Player cannot receive lyrics"

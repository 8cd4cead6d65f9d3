from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import json
from pathlib import Path

import typer

from lyricsync.app import build_runtime, watch as watch_loop
from lyricsync.config import AppConfig, load_config
from lyricsync.errors import LyricsError, NoActiveTrack
from lyricsync.logging_setup import setup_logging
from lyricsync.lrc.export import export_lrc, export_lrcx
from lyricsync.lrc.parse import LrcParseError, parse_lyrics_with_stats
from lyricsync.player.base import Track
from lyricsync.player.mpris import MprisClient, MprisPlayer
from lyricsync.sources.service import ProviderManager, build_providers
from lyricsync.sources.types import SearchRequest
from lyricsync.store.sqlite import SkipListStore


app = typer.Typer(no_args_is_help=True, add_completion=False)


def _override(cfg: AppConfig, **changes) -> AppConfig:
    return cfg.__class__(**{**cfg.__dict__, **changes})


def _fail(err: LyricsError) -> None:
    typer.echo(f"Error: {err.message}", err=True)
    if err.suggestion:
        typer.echo(err.suggestion, err=True)
    raise typer.Exit(code=1)


def _snapshot_player(cfg: AppConfig, player: str | None) -> MprisPlayer:
    p = MprisPlayer(player or cfg.preferred_player, poll_hz=cfg.poll_hz)
    p.poll()
    return p


def _current_track(cfg: AppConfig, player: str | None) -> Track:
    track = _snapshot_player(cfg, player).current_track()
    if track is None:
        _fail(NoActiveTrack())
    return track


@app.command()
def watch(
    player: str | None = typer.Option(None, "--player", help="MPRIS service or short name (e.g. vlc)"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
    poll_hz: float | None = typer.Option(None, "--poll-hz", help="Player polling frequency (Hz)"),
    no_alt_screen: bool = typer.Option(False, "--no-alt-screen", help="Do not use alternate screen buffer"),
    context_lines: int | None = typer.Option(None, "--context", help="Lines above/below current line"),
    offset: int | None = typer.Option(None, "--offset", help="Global timing correction in ms"),
    translation: bool = typer.Option(False, "--translation", help="Show translation under each line"),
    quit_with_player: bool = typer.Option(False, "--quit-with-player", help="Exit when the player quits"),
):
    """
    Watch synced lyrics in terminal (tmux/headless friendly).
    """
    cfg = load_config()
    if poll_hz is not None:
        cfg = _override(cfg, poll_hz=poll_hz)
    if context_lines is not None:
        cfg = _override(cfg, context_lines=context_lines)
    if offset is not None:
        cfg = _override(cfg, global_offset_ms=offset)
    if no_alt_screen:
        cfg = _override(cfg, use_alt_screen=False)
    if quit_with_player:
        cfg = _override(cfg, quit_with_player=True)

    setup_logging(debug)
    raise typer.Exit(
        code=watch_loop(cfg, preferred_player=player or cfg.preferred_player, show_translation=translation)
    )


@app.command()
def players():
    """List available MPRIS players."""
    for p in MprisClient.list_players():
        typer.echo(p)


@app.command()
def parse(lrc_path: Path):
    """Parse LRC/LRCX and print stats."""
    text = lrc_path.read_text(encoding="utf-8")
    try:
        doc, stats = parse_lyrics_with_stats(text)
    except LrcParseError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    langs = sorted({k[3:] for ln in doc.lines for k in ln.attachments if k.startswith("tr:")})
    typer.echo(f"lines_total={stats.lines_total}")
    typer.echo(f"lines_with_timestamps={stats.lines_with_timestamps}")
    typer.echo(f"lines_ignored={stats.lines_ignored}")
    typer.echo(f"attachments_total={stats.attachments_total}")
    typer.echo(f"events_total={stats.events_total}")
    typer.echo(f"offset_ms={doc.offset_ms}")
    typer.echo(f"translations={','.join(langs)}")
    typer.echo(f"tags={doc.metadata.tags or {}}")


@app.command()
def export(
    lrc_path: Path,
    fmt: str = typer.Option("lrcx", "--format", case_sensitive=False, help="lrc|lrcx"),
    out: Path | None = typer.Option(None, "--out", help="Output file (default: stdout)"),
):
    """Re-export a lyrics file as normalized LRC or LRCX."""
    text = lrc_path.read_text(encoding="utf-8")
    try:
        doc, _stats = parse_lyrics_with_stats(text)
    except LrcParseError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    fmt_l = fmt.lower()
    if fmt_l == "lrc":
        data = export_lrc(doc)
    elif fmt_l == "lrcx":
        data = export_lrcx(doc)
    else:
        raise typer.BadParameter("format must be one of: lrc, lrcx")

    if out:
        out.write_text(data, encoding="utf-8")
    else:
        typer.echo(data, nl=False)


@app.command(name="import")
def import_(
    lrc_path: Path,
    player: str | None = typer.Option(None, "--player", help="MPRIS service or short name"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """Use a lyrics file for the track that is playing now."""
    setup_logging(debug)
    cfg = load_config()
    try:
        text = lrc_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        typer.echo(f"Error: cannot read {lrc_path}: {e}", err=True)
        raise typer.Exit(code=1)

    rt = build_runtime(cfg, _snapshot_player(cfg, player))
    try:
        doc = rt.engine.import_lyrics(text)
    except LyricsError as e:
        _fail(e)
    finally:
        # saves the imported document into the save folder
        rt.shutdown()
    typer.echo(f"Imported {len(doc.lines)} lines for {doc.metadata.artist} - {doc.metadata.title}")


@app.command()
def skip(
    track: bool = typer.Option(False, "--track", help="Never search lyrics for the playing track"),
    album: bool = typer.Option(False, "--album", help="Never search lyrics for the playing album"),
    list_: bool = typer.Option(False, "--list", help="Show skip lists"),
    clear: bool = typer.Option(False, "--clear", help="Clear skip lists"),
    player: str | None = typer.Option(None, "--player", help="MPRIS service or short name"),
):
    """Manage the tracks and albums excluded from automatic searching."""
    cfg = load_config()
    store = SkipListStore(cfg.db_path)

    if clear:
        store.clear()
        typer.echo(f"Skip lists cleared: {cfg.db_path}")
        return

    if track or album:
        t = _current_track(cfg, player)
        if track:
            store.add_track(t.id)
            typer.echo(f"Skipping track: {t.display}")
        if album:
            if not t.album:
                typer.echo("The playing track has no album", err=True)
                raise typer.Exit(code=1)
            store.add_album(t.album)
            typer.echo(f"Skipping album: {t.album}")
        return

    if list_:
        typer.echo("Tracks:")
        for v in store.track_ids():
            typer.echo(f"  {v}")
        typer.echo("Albums:")
        for v in store.album_names():
            typer.echo(f"  {v}")
        return

    typer.echo("Use --track, --album, --list or --clear")


@app.command()
def search(
    title: str = typer.Option(..., "--title", "-t", help="Track title"),
    artist: str = typer.Option("", "--artist", "-a", help="Artist name"),
    duration: float = typer.Option(0.0, "--duration", help="Track length in seconds"),
    limit: int | None = typer.Option(None, "--limit", "-n", help="Maximum results per source"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """
    Search all configured sources and show candidates, best first.
    """
    setup_logging(debug)
    cfg = load_config()
    request = SearchRequest(
        title=title,
        artist=artist,
        duration_s=duration,
        limit=limit or cfg.search_limit,
        timeout_s=cfg.search_timeout_s,
    )
    with ThreadPoolExecutor(max_workers=max(cfg.max_workers, 1)) as executor:
        results = ProviderManager(build_providers(cfg), executor).search_all(request)

    if not results:
        typer.echo("No results found")
        return

    if json_output:
        typer.echo(
            json.dumps(
                [
                    {
                        "source": d.metadata.source,
                        "title": d.metadata.title,
                        "artist": d.metadata.artist,
                        "quality": d.metadata.quality,
                        "lines": len(d.lines),
                    }
                    for d in results
                ],
                indent=2,
                ensure_ascii=False,
            )
        )
        return

    for i, d in enumerate(results, 1):
        typer.echo(f"{i}. {d.metadata.artist} - {d.metadata.title}")
        typer.echo(f"   Source: {d.metadata.source}  Quality: {d.metadata.quality:.1f}  Lines: {len(d.lines)}")
        typer.echo()


def main() -> None:
    app()


if __name__ == "__main__":
    main()

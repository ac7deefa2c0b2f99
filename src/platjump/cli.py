from __future__ import annotations

import hashlib
from pathlib import Path

import msgspec
import typer

from .config import ConfigError, ServerConfig, dump_config, load_config
from .constants import MAX_GAME_TICKS

app = typer.Typer(add_completion=False)
session_app = typer.Typer(add_completion=False)
replay_app = typer.Typer(add_completion=False)
app.add_typer(session_app, name="session")
app.add_typer(replay_app, name="replay")

_CONFIG_HELP = "path to config.toml (default: per-user config dir; override with PLATJUMP_CONFIG)"
_DB_HELP = "scoreboard database path (overrides database_path from the config)"


def _load_config_or_exit(config_path: Path | None, db: Path | None) -> ServerConfig:
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    if db is not None:
        config = msgspec.structs.replace(config, database_path=str(db))
    return config


def _open_service(config_path: Path | None, db: Path | None):
    from .server.service import ScoreboardService
    from .server.store import StoreError

    config = _load_config_or_exit(config_path, db)
    try:
        return ScoreboardService.from_config(config)
    except StoreError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc


def _echo_json(obj: object) -> None:
    typer.echo(msgspec.json.encode(obj).decode("utf-8"))


@session_app.command("create")
def cmd_session_create(
    client_id: str = typer.Option("cli", help="identifier used for rate limiting"),
    config_path: Path | None = typer.Option(None, "--config", help=_CONFIG_HELP),
    db: Path | None = typer.Option(None, "--db", help=_DB_HELP),
) -> None:
    """Start a game session and print `{sessionId, seed}`."""
    from .server.service import RateLimitedError
    from .server.store import StoreError

    service = _open_service(config_path, db)
    try:
        response = service.start_game_session(client_id)
    except RateLimitedError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    except StoreError as exc:
        typer.echo(f"failed to create session: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    _echo_json(response)


@app.command("submit")
def cmd_submit(
    session_id: str = typer.Argument(..., help="session id from `session create`"),
    player_name: str = typer.Argument(..., help="display name for the scoreboard"),
    replay_file: Path = typer.Argument(..., help="replay file (.json or .json.gz); its seed is ignored"),
    client_id: str = typer.Option("cli", help="identifier recorded in the audit log"),
    config_path: Path | None = typer.Option(None, "--config", help=_CONFIG_HELP),
    db: Path | None = typer.Option(None, "--db", help=_DB_HELP),
) -> None:
    """Submit a recorded input log for verification against a session."""
    from .replay.codec import ReplayCodecError, load_replay_file
    from .server.protocol import SubmitScoreRequest

    try:
        replay = load_replay_file(replay_file)
    except (OSError, ReplayCodecError) as exc:
        typer.echo(f"cannot read replay: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    service = _open_service(config_path, db)
    request = SubmitScoreRequest(
        session_id=session_id,
        player_name=player_name,
        input_events=list(replay.events),
        score=replay.claimed_score,
    )
    result = service.submit_score(request, client_id=client_id)
    _echo_json(result)
    if not result.success:
        raise typer.Exit(code=1)


@app.command("top")
def cmd_top(
    limit: int | None = typer.Option(None, help="number of entries (default: top_scores_limit from config)"),
    as_json: bool = typer.Option(False, "--json", help="print JSON instead of a table"),
    config_path: Path | None = typer.Option(None, "--config", help=_CONFIG_HELP),
    db: Path | None = typer.Option(None, "--db", help=_DB_HELP),
) -> None:
    """List the highest verified scores."""
    service = _open_service(config_path, db)
    entries = service.get_top_scores(limit)
    if as_json:
        _echo_json(entries)
        return
    if not entries:
        typer.echo("no scores yet")
        return
    for rank, entry in enumerate(entries, start=1):
        typer.echo(f"{rank:2d}. {entry.score:6d}  {entry.player_name}  ({entry.created_at})")


@replay_app.command("run")
def cmd_replay_run(
    replay_file: Path = typer.Argument(..., help="replay file path (.json or .json.gz)"),
    seed: int | None = typer.Option(None, help="override the replay's seed"),
    max_ticks: int = typer.Option(MAX_GAME_TICKS, help="tick ceiling"),
    idle_tail: int | None = typer.Option(None, help="stop N ticks after the last input event"),
    checkpoints_out: Path | None = typer.Option(None, "--checkpoints-out", help="write a checkpoint sidecar"),
    sample_rate: int = typer.Option(60, help="checkpoint every N ticks"),
) -> None:
    """Re-simulate a replay headlessly and print `{score, totalTicks, isDead}`."""
    from .replay.checkpoints import FORMAT_VERSION, ReplayCheckpoints, dump_checkpoints_file, sample_ticks
    from .replay.codec import ReplayCodecError, load_replay
    from .replay.runner import ReplayRunnerError, replay_game
    from .replay.versioning import warn_on_rules_mismatch

    try:
        replay_bytes = Path(replay_file).read_bytes()
        replay = load_replay(replay_bytes)
    except (OSError, ReplayCodecError) as exc:
        typer.echo(f"cannot read replay: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    warn_on_rules_mismatch(replay, action="playback")

    actual = []
    checkpoint_ticks = None
    if checkpoints_out is not None:
        checkpoint_ticks = sample_ticks(max_ticks, sample_rate)

    try:
        result = replay_game(
            int(replay.seed if seed is None else seed),
            replay.events,
            max_ticks=max_ticks,
            idle_tail_ticks=idle_tail,
            checkpoints_out=actual if checkpoints_out is not None else None,
            checkpoint_ticks=checkpoint_ticks,
        )
    except ReplayRunnerError as exc:
        typer.echo(f"replay failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    if checkpoints_out is not None:
        sidecar = ReplayCheckpoints(
            version=FORMAT_VERSION,
            replay_sha256=hashlib.sha256(replay_bytes).hexdigest(),
            sample_rate=max(1, int(sample_rate)),
            checkpoints=actual,
        )
        dump_checkpoints_file(checkpoints_out, sidecar)

    _echo_json(result.to_wire())
    if replay.claimed_score is not None and int(replay.claimed_score) != result.score:
        typer.echo(f"warning: claimed score {replay.claimed_score} != replayed score {result.score}", err=True)


@replay_app.command("verify")
def cmd_replay_verify(
    replay_file: Path = typer.Argument(..., help="replay file path (.json or .json.gz)"),
    checkpoints_file: Path | None = typer.Option(
        None,
        "--checkpoints",
        help="checkpoint sidecar path (default: <replay>.checkpoints.json.gz)",
    ),
    max_ticks: int = typer.Option(MAX_GAME_TICKS, help="tick ceiling"),
) -> None:
    """Verify a replay by comparing headless checkpoints with a sidecar file."""
    from .replay.checkpoints import (
        ReplayCheckpointsError,
        compare_checkpoints,
        default_checkpoints_path,
        load_checkpoints_file,
    )
    from .replay.codec import ReplayCodecError, load_replay
    from .replay.runner import ReplayRunnerError, replay_game
    from .replay.versioning import warn_on_rules_mismatch

    try:
        replay_bytes = Path(replay_file).read_bytes()
        replay = load_replay(replay_bytes)
    except (OSError, ReplayCodecError) as exc:
        typer.echo(f"cannot read replay: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    replay_sha256 = hashlib.sha256(replay_bytes).hexdigest()
    warn_on_rules_mismatch(replay, action="verification")

    if checkpoints_file is None:
        checkpoints_file = default_checkpoints_path(replay_file)
    checkpoints_path = Path(checkpoints_file)
    if not checkpoints_path.is_file():
        typer.echo(f"checkpoints file not found: {checkpoints_path}", err=True)
        raise typer.Exit(code=1)

    try:
        expected = load_checkpoints_file(checkpoints_path)
    except ReplayCheckpointsError as exc:
        typer.echo(f"cannot read checkpoints: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    if expected.replay_sha256 and str(expected.replay_sha256) != str(replay_sha256):
        typer.echo(
            f"warning: checkpoints replay_sha256 mismatch (checkpoints={expected.replay_sha256!r}, replay={replay_sha256!r})",
            err=True,
        )

    actual = []
    try:
        result = replay_game(
            int(replay.seed),
            replay.events,
            max_ticks=max_ticks,
            checkpoints_out=actual,
            checkpoint_ticks={int(ckpt.tick_index) for ckpt in expected.checkpoints},
        )
    except ReplayRunnerError as exc:
        typer.echo(f"replay verification failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    diff = compare_checkpoints(expected.checkpoints, actual)
    if not diff.ok:
        failure = diff.failure
        assert failure is not None
        if failure.kind == "missing_checkpoint":
            typer.echo(f"checkpoint missing at tick={int(failure.tick_index)}", err=True)
            raise typer.Exit(code=1)
        exp = failure.expected
        act = failure.actual
        assert act is not None
        typer.echo(f"checkpoint mismatch at tick={int(failure.tick_index)}", err=True)
        typer.echo(f"  state_hash expected={exp.state_hash} actual={act.state_hash}", err=True)
        for name in failure.fields:
            typer.echo(f"  {name} expected={getattr(exp, name)} actual={getattr(act, name)}", err=True)
        raise typer.Exit(code=1)

    typer.echo(
        f"ok: {len(expected.checkpoints)} checkpoints match; ticks={result.total_ticks} "
        f"score={result.score} dead={result.is_dead}"
    )


@replay_app.command("pack")
def cmd_replay_pack(
    replay_file: Path = typer.Argument(..., help="replay file path (.json or .json.gz)"),
    out: Path = typer.Argument(..., help="output archive path (.pjdemo)"),
    player_name: str = typer.Option("", help="name stored in the archive header"),
) -> None:
    """Replay a run and store it with its outcome as a compact binary archive."""
    from .replay import demo
    from .replay.codec import ReplayCodecError, load_replay_file
    from .replay.runner import ReplayRunnerError, replay_game

    try:
        replay = load_replay_file(replay_file)
        result = replay_game(int(replay.seed), replay.events)
    except (OSError, ReplayCodecError, ReplayRunnerError) as exc:
        typer.echo(f"cannot pack replay: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    header = demo.DemoHeader(
        seed=int(replay.seed),
        score=result.score,
        total_ticks=result.total_ticks,
        flags=demo.build_header_flags(
            is_dead=result.is_dead,
            claimed_score_mismatch=replay.claimed_score is not None and int(replay.claimed_score) != result.score,
        ),
        player_name=player_name,
    )
    try:
        demo.dump(demo.Demo(header=header, events=tuple(replay.events)), out)
    except (OSError, demo.DemoError) as exc:
        typer.echo(f"cannot write archive: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"wrote {out} ({len(replay.events)} events, score={result.score}, ticks={result.total_ticks})")


@replay_app.command("show")
def cmd_replay_show(
    archive: Path = typer.Argument(..., help="archive path (.pjdemo)"),
    events: int = typer.Option(0, help="also print the first N events"),
) -> None:
    """Print an archive's header."""
    from .replay import demo

    try:
        loaded = demo.load(archive)
    except (OSError, demo.DemoError) as exc:
        typer.echo(f"cannot read archive: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    header = loaded.header
    typer.echo(f"seed: {header.seed}")
    typer.echo(f"score: {header.score}")
    typer.echo(f"total_ticks: {header.total_ticks}")
    typer.echo(f"dead: {header.flag(demo.FLAG_DEAD)}")
    typer.echo(f"claimed_score_mismatch: {header.flag(demo.FLAG_CLAIMED_SCORE_MISMATCH)}")
    if header.session_id:
        typer.echo(f"session_id: {header.session_id}")
    if header.player_name:
        typer.echo(f"player_name: {header.player_name}")
    typer.echo(f"events: {len(loaded.events)}")
    for event in loaded.events[: max(0, int(events))]:
        typer.echo(f"  tick={event.tick} key={event.key!r} pressed={event.pressed}")


@app.command("autoplay")
def cmd_autoplay(
    seed: int = typer.Argument(..., help="session seed"),
    out: Path | None = typer.Option(None, help="write the recorded replay (.json.gz)"),
    max_ticks: int = typer.Option(MAX_GAME_TICKS, help="tick ceiling"),
) -> None:
    """Play a seed with the steering bot and optionally save its replay."""
    from .autoplay import autoplay
    from .replay.codec import dump_replay_file

    run = autoplay(seed, max_ticks=max_ticks)
    if out is not None:
        dump_replay_file(out, run.to_replay())
    typer.echo(
        f"seed={run.seed} score={run.result.score} ticks={run.result.total_ticks} "
        f"dead={run.result.is_dead} events={len(run.events)}"
    )


@app.command("config")
def cmd_config(
    config_path: Path | None = typer.Option(None, "--config", help=_CONFIG_HELP),
    db: Path | None = typer.Option(None, "--db", help=_DB_HELP),
) -> None:
    """Print the effective server configuration."""
    config = _load_config_or_exit(config_path, db)
    typer.echo(dump_config(config).decode("utf-8"))
    typer.echo(f"resolved database_path: {config.resolved_database_path()}")


def main(argv: list[str] | None = None) -> None:
    app(prog_name="platjump", args=argv)


if __name__ == "__main__":
    main()

from __future__ import annotations

import gzip
import zlib
from pathlib import Path
from typing import Annotated, Any

import msgspec

from ..constants import REPLAY_FORMAT_VERSION
from .types import InputEvent, Replay

_GZIP_MAGIC = b"\x1f\x8b"


class ReplayCodecError(ValueError):
    pass


class _ReplayDocument(msgspec.Struct, forbid_unknown_fields=True, omit_defaults=True):
    v: int
    seed: Annotated[int, msgspec.Meta(ge=0)]
    events: list[InputEvent] = []
    rules: str = ""
    score: int | None = None


def _is_gzip(data: bytes) -> bool:
    return data.startswith(_GZIP_MAGIC)


def replay_to_obj(replay: Replay) -> dict[str, Any]:
    doc = _ReplayDocument(
        v=int(replay.version),
        seed=int(replay.seed),
        events=list(replay.events),
        rules=str(replay.rules),
        score=None if replay.claimed_score is None else int(replay.claimed_score),
    )
    return msgspec.to_builtins(doc)


def replay_from_obj(obj: Any) -> Replay:
    try:
        doc = msgspec.convert(obj, type=_ReplayDocument)
    except msgspec.ValidationError as exc:
        raise ReplayCodecError(f"invalid replay: {exc}") from exc
    return _replay_from_document(doc)


def _replay_from_document(doc: _ReplayDocument) -> Replay:
    if int(doc.v) != REPLAY_FORMAT_VERSION:
        raise ReplayCodecError(f"unsupported replay version: {doc.v}")
    return Replay(
        seed=int(doc.seed),
        events=list(doc.events),
        version=int(doc.v),
        rules=str(doc.rules),
        claimed_score=doc.score,
    )


def dump_replay(replay: Replay) -> bytes:
    """Serialize a replay as a gzipped JSON blob.

    The gzip header is written with mtime=0 for stable content hashing.
    """

    raw = msgspec.json.encode(replay_to_obj(replay), order="sorted")
    return gzip.compress(raw, compresslevel=9, mtime=0)


def load_replay(data: bytes) -> Replay:
    """Parse a replay blob; plain (uncompressed) JSON is accepted too."""

    if _is_gzip(data):
        try:
            data = gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as exc:
            raise ReplayCodecError(f"corrupt gzip stream: {exc}") from exc
    try:
        doc = msgspec.json.decode(data, type=_ReplayDocument)
    except msgspec.DecodeError as exc:
        raise ReplayCodecError(f"invalid replay: {exc}") from exc
    return _replay_from_document(doc)


def dump_replay_file(path: Path, replay: Replay) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(dump_replay(replay))


def load_replay_file(path: Path) -> Replay:
    return load_replay(Path(path).read_bytes())

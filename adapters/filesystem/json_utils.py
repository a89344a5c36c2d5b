from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any

import orjson


def parse_json_object(raw: bytes | str) -> dict[str, Any]:
    data = orjson.loads(raw)
    return data if isinstance(data, dict) else {}


def load_json(path: Path) -> dict[str, Any]:
    return parse_json_object(path.read_bytes())


def dump_json_bytes(payload: Any) -> bytes:
    return orjson.dumps(
        payload,
        option=orjson.OPT_INDENT_2 | orjson.OPT_NON_STR_KEYS | orjson.OPT_APPEND_NEWLINE,
    )


def write_json_atomic(path: Path, payload: Any) -> None:
    """Swap ``path`` for the new document in one rename.

    The temp file is uniquely named next to the target so concurrent writers
    never share it, and it is removed when the write fails.
    """
    data = dump_json_bytes(payload)
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
    ) as handle:
        tmp_path = Path(handle.name)
    try:
        tmp_path.write_bytes(data)
        tmp_path.replace(path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise

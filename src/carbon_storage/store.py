"""Append-only, hash-chained NDJSON store for calculation records.

Each line is the canonical JSON of an :class:`AuditRecord`. ``prev_hash``
equals the SHA-256 of the canonical previous line, so truncation or edits in
the middle of the file are detected by :meth:`NdjsonCalculationStore.verify_chain`.
Writers serialise through an exclusive lock on a sibling ``.lock`` file.
"""

from __future__ import annotations

import hashlib
import io
import json
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Protocol

import portalocker
from pydantic import ValidationError

from carbon_storage.errors import PersistenceError
from carbon_storage.schemas import AuditRecord

LOGGER = logging.getLogger(__name__)

__all__ = [
    "CalculationStore",
    "InMemoryCalculationStore",
    "NdjsonCalculationStore",
    "canonicalize",
    "hash_canonical",
]


def canonicalize(obj: object) -> str:
    """Return deterministic JSON for ``obj`` (sorted keys, compact)."""

    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def hash_canonical(obj: object) -> str:
    """Return the SHA-256 hex digest of the canonical JSON of ``obj``."""

    return hashlib.sha256(canonicalize(obj).encode("utf-8")).hexdigest()


class CalculationStore(Protocol):
    """Destination for finished calculations."""

    def insert(self, record: AuditRecord) -> str:
        """Persist ``record`` and return its identifier."""
        ...


class InMemoryCalculationStore:
    """Keep records in a list; useful for embedding and tests."""

    def __init__(self) -> None:
        self.records: list[AuditRecord] = []

    def insert(self, record: AuditRecord) -> str:
        self.records.append(record)
        return record.id


class NdjsonCalculationStore:
    """Append calculation records to a local NDJSON file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def insert(self, record: AuditRecord) -> str:
        """Append ``record`` linked to the previous entry.

        Returns:
            The record identifier.

        Raises:
            PersistenceError: If the file cannot be locked, read or written.
        """

        try:
            with self._locked():
                previous = self._last_payload()
                payload = record.model_dump_json_ready()
                if previous is not None:
                    payload["prev_hash"] = hash_canonical(previous)
                else:
                    payload.pop("prev_hash", None)
                linked = AuditRecord.model_validate(payload)
                line = canonicalize(linked.model_dump_json_ready())
                with self._path.open("a", encoding="utf-8") as handle:
                    handle.write(line + "\n")
                    handle.flush()
                    os.fsync(handle.fileno())
        except (OSError, portalocker.LockException) as exc:
            LOGGER.error(
                "Failed to append calculation record",
                extra={"path": str(self._path), "record_id": record.id},
                exc_info=exc,
            )
            raise PersistenceError("Could not write calculation record") from exc
        except (ValueError, ValidationError) as exc:
            LOGGER.error(
                "Calculation store holds an unreadable last record",
                extra={"path": str(self._path), "record_id": record.id},
                exc_info=exc,
            )
            raise PersistenceError("Calculation store holds an unreadable last record") from exc

        LOGGER.info(
            "Calculation record stored",
            extra={"path": str(self._path), "record_id": record.id},
        )
        return record.id

    def iter_records(self) -> Iterator[AuditRecord]:
        """Yield stored records in insertion order.

        Raises:
            PersistenceError: If a line is not a valid record.
        """

        for line_number, payload in self._iter_payloads():
            try:
                yield AuditRecord.model_validate(payload)
            except ValidationError as exc:
                raise PersistenceError(
                    f"Line {line_number} of {self._path} is not a valid record"
                ) from exc

    def verify_chain(self) -> bool:
        """Return ``True`` when every ``prev_hash`` matches its predecessor."""

        previous: dict[str, object] | None = None
        for line_number, payload in self._iter_payloads():
            expected = None if previous is None else hash_canonical(previous)
            if payload.get("prev_hash") != expected:
                LOGGER.warning(
                    "Calculation store chain broken",
                    extra={"path": str(self._path), "line": line_number},
                )
                return False
            previous = payload
        return True

    def _iter_payloads(self) -> Iterator[tuple[int, dict[str, object]]]:
        if not self._path.exists():
            return
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                for line_number, raw in enumerate(handle, start=1):
                    if not raw.strip():
                        continue
                    try:
                        payload = json.loads(raw)
                    except json.JSONDecodeError as exc:
                        raise PersistenceError(
                            f"Line {line_number} of {self._path} is not valid JSON"
                        ) from exc
                    if not isinstance(payload, dict):
                        raise PersistenceError(
                            f"Line {line_number} of {self._path} is not an object"
                        )
                    yield line_number, payload
        except OSError as exc:
            raise PersistenceError(f"Could not read {self._path}: {exc}") from exc

    def _last_payload(self) -> dict[str, object] | None:
        if not self._path.exists():
            return None
        with self._path.open("rb") as handle:
            line = _read_last_nonempty_line(handle)
        if line is None:
            return None
        payload = json.loads(line)
        if not isinstance(payload, dict):
            raise ValueError("last record is not a JSON object")
        return payload

    @contextmanager
    def _locked(self) -> Iterator[None]:
        lock_path = self._path.with_suffix(self._path.suffix + ".lock")
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        with lock_path.open("a+b") as lock_fp:
            portalocker.lock(lock_fp, portalocker.LOCK_EX)
            try:
                yield
            finally:
                portalocker.unlock(lock_fp)


def _read_last_nonempty_line(handle: IO[bytes]) -> str | None:
    """Read the last non-empty line scanning backwards in 4 KB blocks."""

    handle.seek(0, io.SEEK_END)
    offset = handle.tell()
    buffer = b""
    while offset > 0:
        read_len = min(4096, offset)
        offset -= read_len
        handle.seek(offset)
        buffer = handle.read(read_len) + buffer
        lines = [line for line in buffer.split(b"\n") if line.strip()]
        # A partial first line is only trusted once the whole file is read.
        if len(lines) > 1 or (lines and offset == 0):
            return lines[-1].decode("utf-8")
    return None

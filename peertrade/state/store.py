"""
peertrade/state/store.py

Transfer State Store

Contract — per claim exactly one of {unset, performed, cancelled}:
  1. try_mark_performed()  succeeds only from unset
  2. try_mark_cancelled()  succeeds only from unset, and only for the sender
  3. A failed try_* never mutates
  4. Check and write happen under one lock — no caller observes between them

Transactions:
    transaction(*participants) holds the store lock for a whole unit of
    work and savepoints the store together with every participant (any
    object with savepoint()/rollback()). Any failure rolls all of them
    back. Transactions nest: only the outermost one commits, and callbacks
    registered with on_commit() run after that commit. A nested
    transaction that succeeded is still undone when an enclosing one fails.
    Every executor sharing a store shares this lock, so no executor can
    observe or undo another's uncommitted marks.

Durability:
    With a journal path, commit() appends surviving marks to a JSONL file,
    one RFC 8785 canonical record per line:
        {"claim": <hex>, "recorded_at": <ts>, "status": "performed"|"cancelled"}
    The journal is replayed on construction. Marks are never deleted once
    committed.

Read-only guard:
    Inside `with store.read_only():` every write raises StaticCallViolation.
    Affordability and approval queries run inside it.
"""

import json
import logging
import os
import threading
import warnings
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from peertrade.core.canonical import canonicalize
from peertrade.core.exceptions import StateStoreError, StaticCallViolation
from peertrade.core.models import TransferStatus
from peertrade.core.time import journal_timestamp

logger = logging.getLogger(__name__)


class TransferStateStore:
    """
    Claim → TransferStatus map with atomic check-and-set.

    Thread-safe via internal re-entrant lock. In-memory only when
    journal_path is None.
    """

    def __init__(self, journal_path: Optional[Path] = None) -> None:
        self._lock:      threading.RLock            = threading.RLock()
        self._status:    Dict[str, TransferStatus]  = {}
        self._undo:      List[str]                  = []
        self._pending:   List[str]                  = []
        self._hooks:     List[Callable[[], None]]   = []
        self._frames:    List[List[Tuple[Any, Any]]] = []
        self._read_only: int                        = 0

        self._journal = Path(journal_path) if journal_path is not None else None
        if self._journal is not None:
            self._restore()

    # ── Reads ─────────────────────────────────────────────────

    def status(self, claim: str) -> TransferStatus:
        with self._lock:
            return self._status.get(claim, TransferStatus.UNSET)

    def is_performed(self, claim: str) -> bool:
        return self.status(claim) is TransferStatus.PERFORMED

    def is_cancelled(self, claim: str) -> bool:
        return self.status(claim) is TransferStatus.CANCELLED

    def __len__(self) -> int:
        with self._lock:
            return len(self._status)

    @property
    def lock(self) -> threading.RLock:
        """Serializes every transaction on this store."""
        return self._lock

    # ── Check-and-set ─────────────────────────────────────────

    def try_mark_performed(self, claim: str) -> bool:
        """Set performed iff the claim is unset. Returns whether it was set."""
        with self._lock:
            self._assert_writable()
            if claim in self._status:
                return False
            self._write(claim, TransferStatus.PERFORMED)
            return True

    def try_mark_cancelled(self, claim: str, caller: str, order_from: str) -> bool:
        """
        Set cancelled iff caller is the order's sender and the claim is unset.
        Returns whether it was set.
        """
        with self._lock:
            self._assert_writable()
            if caller != order_from:
                return False
            if claim in self._status:
                return False
            self._write(claim, TransferStatus.CANCELLED)
            return True

    # ── Transactions ──────────────────────────────────────────

    def savepoint(self) -> int:
        with self._lock:
            return len(self._undo)

    def rollback(self, savepoint: int) -> None:
        """Forget every mark written after savepoint."""
        with self._lock:
            while len(self._undo) > savepoint:
                claim = self._undo.pop()
                del self._status[claim]
                self._pending.remove(claim)

    def commit(self) -> None:
        """
        Make all marks since the last commit permanent.
        Appends them to the journal when one is configured.
        Raises StateStoreError on write failure.
        """
        with self._lock:
            if self._journal is not None and self._pending:
                self._append(self._pending)
            self._pending = []
            self._undo    = []

    @contextmanager
    def transaction(self, *participants: Any) -> Iterator[None]:
        """
        Run a unit of work over the store and participants.

        On any exception the participants and the store are rolled back to
        their entry savepoints and the exception propagates. The outermost
        transaction commits the store, then runs on_commit() callbacks
        in registration order.
        """
        unique: List[Any] = []
        for participant in participants:
            if all(participant is not u for u in unique):
                unique.append(participant)

        with self._lock:
            mark       = self.savepoint()
            hooks_mark = len(self._hooks)
            frame      = [(p, p.savepoint()) for p in unique]
            self._frames.append(frame)
            try:
                yield
                if len(self._frames) == 1:
                    self.commit()
            except BaseException:
                for participant, savepoint in reversed(frame):
                    participant.rollback(savepoint)
                self.rollback(mark)
                del self._hooks[hooks_mark:]
                raise
            finally:
                self._frames.pop()
            if self._frames:
                # Enclosing transaction now owns these savepoints too
                parent = self._frames[-1]
                for participant, savepoint in frame:
                    if all(participant is not p for p, _ in parent):
                        parent.append((participant, savepoint))
                return
            hooks, self._hooks = self._hooks, []

        for hook in hooks:
            hook()

    def on_commit(self, callback: Callable[[], None]) -> None:
        """
        Run callback once the enclosing outermost transaction commits.
        Dropped if it rolls back. Outside a transaction, runs immediately.
        """
        with self._lock:
            if self._frames:
                self._hooks.append(callback)
                return
        callback()

    @contextmanager
    def read_only(self) -> Iterator[None]:
        """Forbid writes for the duration of the block."""
        with self._lock:
            self._read_only += 1
        try:
            yield
        finally:
            with self._lock:
                self._read_only -= 1

    @property
    def is_read_only(self) -> bool:
        with self._lock:
            return self._read_only > 0

    # ── Internal ──────────────────────────────────────────────

    def _assert_writable(self) -> None:
        if self._read_only:
            raise StaticCallViolation(
                "Transfer state cannot change inside a read-only query"
            )

    def _write(self, claim: str, status: TransferStatus) -> None:
        self._status[claim] = status
        self._undo.append(claim)
        self._pending.append(claim)

    def _append(self, claims: List[str]) -> None:
        """Append one batch. A failed write leaves the file as it was."""
        recorded_at = journal_timestamp()
        batch = b"".join(
            canonicalize({
                "claim":       claim,
                "status":      self._status[claim].value,
                "recorded_at": recorded_at,
            }) + b"\n"
            for claim in claims
        )
        self._journal.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(self._journal, "ab", buffering=0) as f:
                offset = f.seek(0, os.SEEK_END)
                try:
                    if f.write(batch) != len(batch):
                        raise OSError("short write")
                    os.fsync(f.fileno())
                except OSError:
                    f.truncate(offset)
                    raise
        except OSError as exc:
            raise StateStoreError(
                f"Failed to append to transfer journal: {exc}",
                {"path": str(self._journal)},
            ) from exc

    def _restore(self) -> None:
        """
        Replay the journal. A torn final line is ignored with a
        RuntimeWarning; any other malformed or contradictory record raises
        StateStoreError.
        """
        if not self._journal.exists():
            return

        try:
            with open(self._journal, "r", encoding="utf-8") as f:
                lines = [line for line in f.read().splitlines() if line.strip()]
        except OSError as exc:
            raise StateStoreError(
                f"Failed to read transfer journal: {exc}",
                {"path": str(self._journal)},
            ) from exc

        for line_num, line in enumerate(lines, 1):
            try:
                record = json.loads(line)
                claim  = record["claim"]
                status = TransferStatus(record["status"])
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
                if line_num == len(lines):
                    warnings.warn(
                        f"Ignoring torn last journal line {line_num} in "
                        f"{self._journal}: {exc}",
                        RuntimeWarning,
                        stacklevel=3,
                    )
                    break
                raise StateStoreError(
                    f"Invalid journal record at line {line_num}: {exc}",
                    {"path": str(self._journal)},
                ) from exc

            if status is TransferStatus.UNSET or claim in self._status:
                raise StateStoreError(
                    f"Contradictory journal record at line {line_num}",
                    {"claim": claim, "status": status.value},
                )
            self._status[claim] = status

        logger.debug(
            "Restored %d transfer marks from %s", len(self._status), self._journal
        )

import asyncio
import copy
import logging
from collections import defaultdict
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple

from db.store import DocKey, Document, LedgerStore, LedgerTransaction, T, TransactionConflictError

logger = logging.getLogger(__name__)


class _MemoryTransaction(LedgerTransaction):
    def __init__(self, store: "InMemoryLedgerStore"):
        super().__init__()
        self._store = store
        self.read_versions: Dict[DocKey, int] = {}

    async def _read(self, collection: str, key: str) -> Optional[Document]:
        self.read_versions.setdefault((collection, key), self._store._version(collection, key))
        doc = self._store._docs[collection].get(key)
        snapshot = copy.deepcopy(doc) if doc is not None else None
        # Suspend after the snapshot, like a network round trip, so other
        # transactions can commit over what this one has already read
        await asyncio.sleep(0)
        return snapshot


class InMemoryLedgerStore(LedgerStore):
    """Process-local store with optimistic, serializable transactions.

    Each document carries a version. A transaction records the version of
    everything it reads and commits only if none of them moved; otherwise it
    is re-run from scratch. Used for local development and the test suite.
    """

    def __init__(self, max_attempts: int = 25):
        self.max_attempts = max_attempts
        self._docs: Dict[str, Dict[str, Document]] = defaultdict(dict)
        self._versions: Dict[DocKey, int] = {}
        self.conflicts = 0

    def _version(self, collection: str, key: str) -> int:
        return self._versions.get((collection, key), 0)

    def _is_stale(self, txn: _MemoryTransaction) -> bool:
        return any(self._version(c, k) != v for (c, k), v in txn.read_versions.items())

    def _apply(self, collection: str, key: str, mode: str, doc: Document) -> None:
        if mode == "set" or key not in self._docs[collection]:
            self._docs[collection][key] = copy.deepcopy(doc)
        else:
            self._docs[collection][key].update(copy.deepcopy(doc))
        self._versions[(collection, key)] = self._version(collection, key) + 1

    def _commit(self, txn: _MemoryTransaction) -> bool:
        # No awaits in here: validation and apply happen as one step
        if self._is_stale(txn):
            return False
        for (collection, key), (mode, doc) in txn.writes.items():
            self._apply(collection, key, mode, doc)
        return True

    async def run_transaction(self, fn: Callable[[LedgerTransaction], Awaitable[T]]) -> T:
        for attempt in range(1, self.max_attempts + 1):
            txn = _MemoryTransaction(self)
            try:
                result = await fn(txn)
            except Exception:
                # A rejection computed from a stale snapshot is not definitive
                if self._is_stale(txn):
                    self.conflicts += 1
                    logger.debug(f"Stale read behind aborted transaction (attempt {attempt}); retrying")
                    await asyncio.sleep(0)
                    continue
                raise
            if self._commit(txn):
                return result
            self.conflicts += 1
            logger.debug(f"Transaction conflict (attempt {attempt}); retrying")
            await asyncio.sleep(0)
        raise TransactionConflictError(f"Transaction did not commit after {self.max_attempts} attempts")

    async def get(self, collection: str, key: str) -> Optional[Document]:
        doc = self._docs[collection].get(key)
        return copy.deepcopy(doc) if doc is not None else None

    async def put(self, collection: str, key: str, doc: Document) -> None:
        self._apply(collection, key, "set", doc)

    async def find_one(self, collection: str, field: str, value: Any) -> Optional[Tuple[str, Document]]:
        for key, doc in self._docs[collection].items():
            if doc.get(field) == value:
                return key, copy.deepcopy(doc)
        return None

    async def top(self, collection: str, field: str, limit: int) -> List[Tuple[str, Document]]:
        ranked = sorted(
            self._docs[collection].items(),
            key=lambda item: item[1].get(field) or 0,
            reverse=True,
        )
        return [(key, copy.deepcopy(doc)) for key, doc in ranked[:limit]]

    async def scan(self, collection: str) -> AsyncIterator[Tuple[str, Document]]:
        for key, doc in list(self._docs[collection].items()):
            yield key, copy.deepcopy(doc)

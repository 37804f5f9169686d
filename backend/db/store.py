from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar
import copy

T = TypeVar("T")

Document = Dict[str, Any]
DocKey = Tuple[str, str]


class TransactionConflictError(Exception):
    """A transaction kept losing conflicts and never reached a commit."""


class LedgerTransaction:
    """One attempt of a ledger transaction.

    Reads hit the backend immediately. Writes are buffered and applied
    together on commit, so an exception raised before commit leaves the
    store untouched.
    """

    def __init__(self):
        self._writes: Dict[DocKey, Tuple[str, Document]] = {}

    async def _read(self, collection: str, key: str) -> Optional[Document]:
        raise NotImplementedError

    async def get(self, collection: str, key: str) -> Optional[Document]:
        pending = self._writes.get((collection, key))
        if pending is not None:
            mode, doc = pending
            if mode == "set":
                return copy.deepcopy(doc)
            current = await self._read(collection, key) or {}
            current.update(copy.deepcopy(doc))
            return current
        return await self._read(collection, key)

    def set(self, collection: str, key: str, doc: Document) -> None:
        """Replace the whole document."""
        self._writes[(collection, key)] = ("set", copy.deepcopy(doc))

    def update(self, collection: str, key: str, fields: Document) -> None:
        """Merge top-level fields into the document, keeping the rest."""
        previous = self._writes.get((collection, key))
        if previous is not None:
            mode, doc = previous
            merged = {**doc, **copy.deepcopy(fields)}
            self._writes[(collection, key)] = (mode, merged)
        else:
            self._writes[(collection, key)] = ("update", copy.deepcopy(fields))

    @property
    def writes(self) -> Dict[DocKey, Tuple[str, Document]]:
        return self._writes


class LedgerStore:
    """Transactional document store backing the reward ledger."""

    async def run_transaction(self, fn: Callable[[LedgerTransaction], Awaitable[T]]) -> T:
        """Run ``fn`` atomically, re-running it with fresh reads on conflict."""
        raise NotImplementedError

    async def get(self, collection: str, key: str) -> Optional[Document]:
        raise NotImplementedError

    async def put(self, collection: str, key: str, doc: Document) -> None:
        raise NotImplementedError

    async def find_one(self, collection: str, field: str, value: Any) -> Optional[Tuple[str, Document]]:
        raise NotImplementedError

    async def top(self, collection: str, field: str, limit: int) -> List[Tuple[str, Document]]:
        """Documents with the highest ``field`` values, highest first."""
        raise NotImplementedError

    def scan(self, collection: str) -> AsyncIterator[Tuple[str, Document]]:
        raise NotImplementedError

    async def close(self) -> None:
        return None

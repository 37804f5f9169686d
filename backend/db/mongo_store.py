import logging
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo import DESCENDING
from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern

from db.store import Document, LedgerStore, LedgerTransaction, T

logger = logging.getLogger(__name__)


class _MongoTransaction(LedgerTransaction):
    def __init__(self, db: AsyncIOMotorDatabase, session: AsyncIOMotorClientSession):
        super().__init__()
        self._db = db
        self._session = session

    async def _read(self, collection: str, key: str) -> Optional[Document]:
        doc = await self._db[collection].find_one({"_id": key}, session=self._session)
        if doc is not None:
            doc.pop("_id", None)
        return doc

    async def flush(self) -> None:
        for (collection, key), (mode, doc) in self.writes.items():
            if mode == "set":
                await self._db[collection].replace_one({"_id": key}, doc, upsert=True, session=self._session)
            else:
                await self._db[collection].update_one({"_id": key}, {"$set": doc}, upsert=True, session=self._session)


class MongoLedgerStore(LedgerStore):
    """Ledger store on MongoDB multi-document transactions.

    Requires a replica set or sharded cluster. Write conflicts surface as
    TransientTransactionError, on which the driver re-runs the whole callback.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db

    async def run_transaction(self, fn: Callable[[LedgerTransaction], Awaitable[T]]) -> T:
        attempts = 0

        async def _callback(session: AsyncIOMotorClientSession):
            nonlocal attempts
            attempts += 1
            if attempts > 1:
                logger.debug(f"Retrying ledger transaction (attempt {attempts})")
            txn = _MongoTransaction(self._db, session)
            result = await fn(txn)
            await txn.flush()
            return result

        async with await self._db.client.start_session() as session:
            return await session.with_transaction(
                _callback,
                read_concern=ReadConcern("snapshot"),
                write_concern=WriteConcern("majority"),
            )

    async def get(self, collection: str, key: str) -> Optional[Document]:
        doc = await self._db[collection].find_one({"_id": key})
        if doc is not None:
            doc.pop("_id", None)
        return doc

    async def put(self, collection: str, key: str, doc: Document) -> None:
        await self._db[collection].replace_one({"_id": key}, doc, upsert=True)

    async def find_one(self, collection: str, field: str, value: Any) -> Optional[Tuple[str, Document]]:
        doc = await self._db[collection].find_one({field: value})
        if doc is None:
            return None
        key = doc.pop("_id")
        return str(key), doc

    async def top(self, collection: str, field: str, limit: int) -> List[Tuple[str, Document]]:
        cursor = self._db[collection].find({}).sort(field, DESCENDING).limit(limit)
        results = []
        async for doc in cursor:
            key = doc.pop("_id")
            results.append((str(key), doc))
        return results

    async def scan(self, collection: str) -> AsyncIterator[Tuple[str, Document]]:
        async for doc in self._db[collection].find({}):
            key = doc.pop("_id")
            yield str(key), doc

    async def close(self) -> None:
        self._db.client.close()

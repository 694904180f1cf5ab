"""
salesdesk/repositories/documents.py
Document store capability and its Firestore implementation.

Every blocking Firestore call runs in the default executor and is bounded by
`STORE_TIMEOUT_SECONDS`; failures and timeouts surface as `StoreUnavailable`.
Listener callbacks arrive on Firestore's watch threads and are handed back to
the event loop that opened the subscription.
"""
import asyncio
import functools
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Tuple

from google.api_core.exceptions import GoogleAPICallError, RetryError
from google.cloud import firestore as gcf
from google.cloud.firestore_v1 import FieldFilter

from salesdesk.core.errors import StoreUnavailable

logger = logging.getLogger("salesdesk.store")

Document = Dict[str, Any]
DocumentCallback = Callable[[Optional[Document]], None]
Unsubscribe = Callable[[], None]


class DocumentStore(Protocol):
    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        """Return the document's fields, or None when it does not exist."""

    async def upsert_merge(
        self,
        collection: str,
        doc_id: str,
        fields: Document,
        create_only: Iterable[str] = (),
    ) -> None:
        """Create or merge a document; `create_only` fields never overwrite an existing document."""

    def subscribe(self, collection: str, doc_id: str, callback: DocumentCallback) -> Unsubscribe:
        """Deliver the current document, then every change, on the calling event loop."""

    async def query(self, collection: str, filters: Iterable[Tuple[str, str, Any]] = ()) -> List[Tuple[str, Document]]:
        """Return `(doc_id, fields)` pairs matching all `(field, op, value)` filters."""

    async def delete(self, collection: str, doc_id: str) -> None:
        ...


class FirestoreDocumentStore:
    def __init__(self, client: gcf.Client, timeout: float = 10.0):
        self._db = client
        self._timeout = timeout

    async def _call(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        try:
            loop = asyncio.get_running_loop()
            future = loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))
            return await asyncio.wait_for(future, self._timeout)
        except asyncio.TimeoutError as exc:
            raise StoreUnavailable(f"Firestore call timed out after {self._timeout}s") from exc
        except (GoogleAPICallError, RetryError) as exc:
            raise StoreUnavailable(f"Firestore call failed: {exc}") from exc

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        snap = await self._call(self._db.collection(collection).document(doc_id).get)
        return snap.to_dict() if snap.exists else None

    async def upsert_merge(self, collection, doc_id, fields, create_only=()):
        ref = self._db.collection(collection).document(doc_id)
        create_only = frozenset(create_only)

        @gcf.transactional
        def _write(transaction):
            snap = ref.get(transaction=transaction)
            if snap.exists and create_only:
                # someone else created it first; keep their once-only fields
                data = {k: v for k, v in fields.items() if k not in create_only}
            else:
                data = dict(fields)
            if data:
                transaction.set(ref, data, merge=True)
            return snap.exists

        existed = await self._call(_write, self._db.transaction())
        if existed and create_only:
            logger.info("%s/%s already existed; create-only fields left untouched", collection, doc_id)

    def subscribe(self, collection, doc_id, callback):
        loop = asyncio.get_running_loop()
        closed = False

        def _dispatch(data):
            # runs on the loop; nothing is delivered once unsubscribe() returned
            if not closed:
                callback(data)

        def _on_snapshot(doc_snapshots, changes, read_time):
            for snap in doc_snapshots:
                data = snap.to_dict() if snap.exists else None
                try:
                    loop.call_soon_threadsafe(_dispatch, data)
                except RuntimeError:
                    logger.debug("Event loop closed; dropping snapshot for %s/%s", collection, doc_id)

        watch = self._db.collection(collection).document(doc_id).on_snapshot(_on_snapshot)

        def _unsubscribe():
            nonlocal closed
            if closed:
                return
            closed = True
            watch.unsubscribe()

        return _unsubscribe

    async def query(self, collection, filters=()):
        q = self._db.collection(collection)
        for field, op, value in filters:
            q = q.where(filter=FieldFilter(field, op, value))

        def _fetch():
            return [(doc.id, doc.to_dict() or {}) for doc in q.stream()]

        return await self._call(_fetch)

    async def delete(self, collection, doc_id):
        await self._call(self._db.collection(collection).document(doc_id).delete)

"""In-process document store for tests and offline use. No persistence."""

import copy
import uuid
from typing import Any, Dict, List, Optional

from ..domain.errors import BatchCommitError, NotFoundError
from ..domain.repositories import DocumentStore, WriteBatch


def _sort_key(field_name: str):
    def key(doc: Dict[str, Any]):
        value = doc.get(field_name)
        return (value is None, value if value is not None else "")
    return key


class InMemoryWriteBatch(WriteBatch):
    def __init__(self, store: "InMemoryDocumentStore", user_id: str):
        super().__init__(user_id)
        self.store = store

    async def commit(self) -> None:
        # Validate every target first so a failing batch applies nothing.
        for op in self.operations:
            if op.op in ("update", "increment") and not self.store._exists(self.user_id, op.collection, op.doc_id):
                raise BatchCommitError(f"Cannot {op.op} missing document {op.collection}/{op.doc_id}")
        for op in self.operations:
            docs = self.store._collection(self.user_id, op.collection)
            if op.op == "update":
                docs[op.doc_id].update(copy.deepcopy(op.fields))
            elif op.op == "increment":
                for field_name, delta in op.fields.items():
                    docs[op.doc_id][field_name] = (docs[op.doc_id].get(field_name) or 0) + delta
            elif op.op == "delete":
                docs.pop(op.doc_id, None)
        self.store.commits += 1


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed implementation of the DocumentStore contract.

    Documents are deep-copied in and out so callers never share state with the
    store, the same way they would not with a remote one.
    """

    def __init__(self):
        # Structure: {(user_id, collection): {doc_id: document}}
        self._data: Dict[tuple, Dict[str, Dict[str, Any]]] = {}
        self.commits = 0

    def _collection(self, user_id: str, collection: str) -> Dict[str, Dict[str, Any]]:
        return self._data.setdefault((user_id, collection), {})

    def _exists(self, user_id: str, collection: str, doc_id: str) -> bool:
        return doc_id in self._collection(user_id, collection)

    def _out(self, doc_id: str, doc: Dict[str, Any]) -> Dict[str, Any]:
        result = copy.deepcopy(doc)
        result["id"] = doc_id
        return result

    async def get(self, user_id: str, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        doc = self._collection(user_id, collection).get(doc_id)
        return self._out(doc_id, doc) if doc is not None else None

    async def find_by_field(
        self,
        user_id: str,
        collection: str,
        field_name: str,
        value: Any,
        limit: Optional[int] = None,
        contains: bool = False,
    ) -> List[Dict[str, Any]]:
        matches = []
        for doc_id, doc in self._collection(user_id, collection).items():
            current = doc.get(field_name)
            hit = value in (current or []) if contains else current == value
            if hit:
                matches.append(self._out(doc_id, doc))
                if limit is not None and len(matches) >= limit:
                    break
        return matches

    async def list_all(
        self,
        user_id: str,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        docs = [self._out(doc_id, doc) for doc_id, doc in self._collection(user_id, collection).items()]
        if order_by:
            present = [d for d in docs if d.get(order_by) is not None]
            missing = [d for d in docs if d.get(order_by) is None]
            present.sort(key=_sort_key(order_by), reverse=descending)
            docs = present + missing
        return docs[:limit] if limit is not None else docs

    async def add(self, user_id: str, collection: str, data: Dict[str, Any]) -> str:
        doc_id = data.get("id") or str(uuid.uuid4())
        doc = copy.deepcopy(data)
        doc["id"] = doc_id
        self._collection(user_id, collection)[doc_id] = doc
        return doc_id

    async def update(self, user_id: str, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        docs = self._collection(user_id, collection)
        if doc_id not in docs:
            raise NotFoundError(collection, doc_id)
        docs[doc_id].update(copy.deepcopy(fields))

    async def delete(self, user_id: str, collection: str, doc_id: str) -> bool:
        return self._collection(user_id, collection).pop(doc_id, None) is not None

    async def increment(self, user_id: str, collection: str, doc_id: str, field_name: str, delta: int) -> None:
        docs = self._collection(user_id, collection)
        if doc_id not in docs:
            raise NotFoundError(collection, doc_id)
        docs[doc_id][field_name] = (docs[doc_id].get(field_name) or 0) + delta

    def batch(self, user_id: str) -> WriteBatch:
        return InMemoryWriteBatch(self, user_id)

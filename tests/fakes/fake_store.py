"""Fake in-memory document store for scoped retrieval testing.

Stands in for every ``app.db.*`` function the service calls. The scoped
search is an independent Python rendition of the SQL in
``migrations/0001_scoped_retrieval.sql`` so that tests exercise the
application-level re-check against a separately written store predicate.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List
from unittest.mock import patch
from uuid import UUID, uuid4

import numpy as np

from tests.fakes.fake_embedder import fake_embed, fake_embed_texts

_EPOCH = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _s(value: Any) -> str | None:
    return None if value is None else str(value)


def _ts(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class FakeStore:
    """In-memory store implementation for testing."""

    def __init__(self):
        self.reset()

    def reset(self):
        """Reset all tables to empty."""
        self.clients: Dict[str, Dict[str, Any]] = {}
        self.links: List[Dict[str, Any]] = []
        self.api_keys: Dict[str, Dict[str, Any]] = {}
        self.data_items: Dict[str, Dict[str, Any]] = {}
        self.data_chunks: List[Dict[str, Any]] = []
        self.audit_log: List[Dict[str, Any]] = []
        self.rpc_calls: List[Dict[str, Any]] = []
        self._tick = 0

        # Failure injection
        self.leak = False
        self.touch_fails = False
        self.fail_chunk_insert = False

    def _now(self) -> str:
        self._tick += 1
        return (_EPOCH + timedelta(seconds=self._tick)).isoformat()

    # ------------------------------------------------------------------
    # Seeding helpers
    # ------------------------------------------------------------------

    def add_client(
        self,
        client_id: UUID,
        organization_id: UUID | None = None,
        primary_coach_id: UUID | None = None,
    ) -> None:
        self.clients[str(client_id)] = {
            "id": str(client_id),
            "organization_id": _s(organization_id),
            "primary_coach_id": _s(primary_coach_id),
        }

    def link(self, coach_id: UUID, client_id: UUID) -> None:
        self.create_link(coach_id, client_id)

    def add_item(
        self,
        data_type: str,
        content: str,
        visibility_level: str,
        coach_id: UUID | None = None,
        client_id: UUID | None = None,
        organization_id: UUID | None = None,
        created_by: UUID | None = None,
        metadata: dict | None = None,
        session_date: datetime | None = None,
    ) -> str:
        """Insert a data item with a single chunk embedded from its content."""
        item = self.insert_data_item(
            {
                "data_type": data_type,
                "coach_id": _s(coach_id),
                "client_id": _s(client_id),
                "organization_id": _s(organization_id),
                "created_by": _s(created_by),
                "visibility_level": visibility_level,
                "raw_content": content,
                "metadata": metadata or {},
                "session_date": session_date.isoformat() if session_date else None,
            },
            request_id=uuid4(),
        )
        self.insert_chunks(
            item["id"],
            [{"chunk_index": 0, "content": content, "start_char": 0, "end_char": len(content)}],
            [fake_embed(content)],
            request_id=uuid4(),
        )
        return item["id"]

    def issue_key(
        self,
        coach_id: UUID | None = None,
        client_id: UUID | None = None,
        admin_id: UUID | None = None,
        expires_at: str | None = None,
    ) -> str:
        """Store a credential record and return its plaintext key."""
        from app.core.credentials import generate_api_key, hash_secret, key_prefix_of

        api_key = generate_api_key("test")
        row = self.create_credential(
            key_prefix=key_prefix_of(api_key),
            key_hash=hash_secret(api_key),
            coach_id=coach_id,
            client_id=client_id,
            admin_id=admin_id,
        )
        if expires_at:
            self.api_keys[row["id"]]["expires_at"] = expires_at
        return api_key

    def credential_id_for(self, api_key: str) -> str:
        from app.core.credentials import key_prefix_of, verify_secret

        for row in self.api_keys.values():
            if row["key_prefix"] == key_prefix_of(api_key) and verify_secret(api_key, row["key_hash"]):
                return row["id"]
        raise KeyError("unknown key")

    def actions(self) -> List[str]:
        return [row["action"] for row in self.audit_log]

    def events(self, action: str) -> List[Dict[str, Any]]:
        return [row for row in self.audit_log if row["action"] == action]

    # ------------------------------------------------------------------
    # app.db.credentials
    # ------------------------------------------------------------------

    def list_credentials_by_prefix(self, key_prefix: str) -> List[Dict[str, Any]]:
        return [dict(r) for r in self.api_keys.values() if r["key_prefix"] == key_prefix]

    def create_credential(
        self,
        key_prefix: str,
        key_hash: str,
        coach_id=None,
        client_id=None,
        admin_id=None,
        name=None,
        expires_at=None,
    ) -> Dict[str, Any]:
        row = {
            "id": str(uuid4()),
            "key_prefix": key_prefix,
            "key_hash": key_hash,
            "name": name,
            "coach_id": _s(coach_id),
            "client_id": _s(client_id),
            "admin_id": _s(admin_id),
            "is_revoked": False,
            "revoked_at": None,
            "expires_at": expires_at.isoformat() if isinstance(expires_at, datetime) else expires_at,
            "last_used_at": None,
            "created_at": self._now(),
        }
        self.api_keys[row["id"]] = row
        result = dict(row)
        result.pop("key_hash")
        return result

    def list_credentials(self, include_revoked: bool = True, limit: int = 200) -> List[Dict[str, Any]]:
        rows = [
            {k: v for k, v in r.items() if k != "key_hash"}
            for r in self.api_keys.values()
            if include_revoked or not r["is_revoked"]
        ]
        rows.sort(key=lambda r: r["created_at"], reverse=True)
        return rows[:limit]

    def revoke_credential(self, credential_id) -> Dict[str, Any] | None:
        row = self.api_keys.get(str(credential_id))
        if row is None:
            return None
        row["is_revoked"] = True
        row["revoked_at"] = self._now()
        return {k: v for k, v in row.items() if k != "key_hash"}

    def touch_last_used(self, credential_id) -> None:
        if self.touch_fails:
            raise RuntimeError("last_used_at update failed")
        self.api_keys[str(credential_id)]["last_used_at"] = self._now()

    # ------------------------------------------------------------------
    # app.db.coach_client_links / app.db.clients
    # ------------------------------------------------------------------

    def list_client_ids_for_coach(self, coach_id) -> List[str]:
        return [link["client_id"] for link in self.links if link["coach_id"] == str(coach_id)]

    def create_link(self, coach_id, client_id) -> Dict[str, Any]:
        for link in self.links:
            if link["coach_id"] == str(coach_id) and link["client_id"] == str(client_id):
                return dict(link)
        link = {
            "id": str(uuid4()),
            "coach_id": str(coach_id),
            "client_id": str(client_id),
            "created_at": self._now(),
        }
        self.links.append(link)
        return dict(link)

    def delete_link(self, coach_id, client_id) -> bool:
        before = len(self.links)
        self.links = [
            link
            for link in self.links
            if not (link["coach_id"] == str(coach_id) and link["client_id"] == str(client_id))
        ]
        return len(self.links) < before

    def get_client(self, client_id) -> Dict[str, Any] | None:
        row = self.clients.get(str(client_id))
        return dict(row) if row else None

    def get_client_organizations(self, client_ids: List[str]) -> Dict[str, str | None]:
        return {
            str(cid): self.clients[str(cid)]["organization_id"]
            for cid in client_ids
            if str(cid) in self.clients
        }

    # ------------------------------------------------------------------
    # app.db.data_items / app.db.data_chunks
    # ------------------------------------------------------------------

    def insert_data_item(self, data: Dict[str, Any], request_id) -> Dict[str, Any]:
        row = {**data, "id": str(uuid4()), "created_at": self._now()}
        self.data_items[row["id"]] = row
        return dict(row)

    def insert_chunks(self, data_item_id, chunks, embeddings, request_id) -> List[Dict[str, Any]]:
        if self.fail_chunk_insert:
            raise RuntimeError("chunk insert failed")
        assert len(chunks) == len(embeddings)
        inserted = []
        for chunk, embedding in zip(chunks, embeddings):
            row = {
                "id": str(uuid4()),
                "data_item_id": str(data_item_id),
                "chunk_index": chunk["chunk_index"],
                "content": chunk["content"],
                "embedding": list(embedding),
                "metadata": {"start_char": chunk["start_char"], "end_char": chunk["end_char"]},
            }
            self.data_chunks.append(row)
            inserted.append(row)
        return inserted

    def delete_data_item(self, data_item_id) -> None:
        self.data_items.pop(str(data_item_id), None)
        self.data_chunks = [c for c in self.data_chunks if c["data_item_id"] != str(data_item_id)]

    def _passes_filters(self, item: Dict[str, Any], params: Dict[str, Any]) -> bool:
        if params["filter_types"] and item["data_type"] not in params["filter_types"]:
            return False
        for column, key in (
            ("coach_id", "filter_coach_id"),
            ("client_id", "filter_client_id"),
            ("organization_id", "filter_org_id"),
        ):
            if params.get(key) is not None and item.get(column) != params[key]:
                return False

        date_from, date_to = _ts(params.get("filter_date_from")), _ts(params.get("filter_date_to"))
        if date_from is None and date_to is None:
            return True
        session_date = _ts(item.get("session_date"))
        if session_date is None:
            return False
        if date_from is not None and session_date < date_from:
            return False
        if date_to is not None and session_date > date_to:
            return False
        return True

    def _visible(self, item: Dict[str, Any], params: Dict[str, Any]) -> bool:
        if params["scope_can_see_all"]:
            return True

        kind = params["scope_actor_kind"]
        actor_id = params["scope_actor_id"]
        owned_ids = set(params["scope_owned_ids"])
        org_ids = set(params["scope_org_ids"])
        level = item["visibility_level"]

        if item.get("client_id") is not None:
            owned = item["client_id"] in owned_ids
        else:
            owned = item.get("coach_id") in owned_ids

        if level == "public":
            return True
        if level == "private":
            if actor_id is None:
                return False
            if item.get("created_by") is not None:
                return item["created_by"] == actor_id
            return (kind == "coach" and item.get("coach_id") == actor_id) or (
                kind == "client" and item.get("client_id") == actor_id
            )
        if level == "coach_only":
            return kind == "coach" and owned
        if level == "org_visible":
            return owned or (kind == "coach" and item.get("organization_id") in org_ids)
        return False

    def match_data_chunks_scoped(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        self.rpc_calls.append(params)
        query = np.asarray(params["query_embedding"], dtype=np.float64)

        rows = []
        for chunk in self.data_chunks:
            item = self.data_items.get(chunk["data_item_id"])
            if item is None or not self._passes_filters(item, params):
                continue
            if not self.leak and not self._visible(item, params):
                continue

            vector = np.asarray(chunk["embedding"], dtype=np.float64)
            similarity = float(np.dot(query, vector) / (np.linalg.norm(query) * np.linalg.norm(vector)))
            if similarity < params["match_threshold"]:
                continue

            rows.append(
                {
                    "id": chunk["id"],
                    "data_item_id": item["id"],
                    "chunk_index": chunk["chunk_index"],
                    "content": chunk["content"],
                    "similarity": similarity,
                    "data_type": item["data_type"],
                    "visibility_level": item["visibility_level"],
                    "coach_id": item.get("coach_id"),
                    "client_id": item.get("client_id"),
                    "organization_id": item.get("organization_id"),
                    "created_by": item.get("created_by"),
                    "session_date": item.get("session_date"),
                    "created_at": item["created_at"],
                    "metadata": {**(item.get("metadata") or {}), **chunk["metadata"]},
                }
            )

        rows.sort(key=lambda r: (r["similarity"], r["created_at"]), reverse=True)
        return rows[: params["match_count"]]

    def list_client_items_scoped(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        self.rpc_calls.append(params)
        target = str(params["target_client_id"])

        rows = []
        for item in self.data_items.values():
            if item.get("client_id") != target or not self._passes_filters(item, params):
                continue
            if not self.leak and not self._visible(item, params):
                continue
            rows.append(
                {
                    key: item.get(key)
                    for key in (
                        "id",
                        "data_type",
                        "visibility_level",
                        "coach_id",
                        "client_id",
                        "organization_id",
                        "created_by",
                        "session_date",
                        "created_at",
                        "raw_content",
                        "metadata",
                    )
                }
            )

        # Most recent session first, undated items last
        rows.sort(key=lambda r: r["created_at"], reverse=True)
        rows.sort(key=lambda r: (r["session_date"] is not None, _ts(r["session_date"]) or _EPOCH), reverse=True)
        return rows[: params["match_count"]]

    # ------------------------------------------------------------------
    # app.db.audit_log
    # ------------------------------------------------------------------

    def insert_audit_event(self, row: Dict[str, Any]) -> None:
        self.audit_log.append(dict(row))

    def list_audit_events(self, action=None, actor_id=None, limit=100, offset=0):
        rows = [
            r
            for r in reversed(self.audit_log)
            if (action is None or r["action"] == action)
            and (actor_id is None or r.get("actor_id") == actor_id)
        ]
        return rows[offset: offset + limit], len(rows)

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def patches(self) -> list:
        """Patches replacing app.db functions, the embedder and audit dispatch."""
        import app.core.audit as audit_module

        return [
            patch("app.db.credentials.list_credentials_by_prefix", side_effect=self.list_credentials_by_prefix),
            patch("app.db.credentials.create_credential", side_effect=self.create_credential),
            patch("app.db.credentials.list_credentials", side_effect=self.list_credentials),
            patch("app.db.credentials.revoke_credential", side_effect=self.revoke_credential),
            patch("app.db.credentials.touch_last_used", side_effect=self.touch_last_used),
            patch("app.db.coach_client_links.list_client_ids_for_coach", side_effect=self.list_client_ids_for_coach),
            patch("app.db.coach_client_links.create_link", side_effect=self.create_link),
            patch("app.db.coach_client_links.delete_link", side_effect=self.delete_link),
            patch("app.db.clients.get_client", side_effect=self.get_client),
            patch("app.db.clients.get_client_organizations", side_effect=self.get_client_organizations),
            patch("app.db.data_items.insert_data_item", side_effect=self.insert_data_item),
            patch("app.db.data_items.insert_chunks", side_effect=self.insert_chunks),
            patch("app.db.data_items.delete_data_item", side_effect=self.delete_data_item),
            patch("app.db.data_items.list_client_items_scoped", side_effect=self.list_client_items_scoped),
            patch("app.db.data_chunks.match_data_chunks_scoped", side_effect=self.match_data_chunks_scoped),
            patch("app.db.audit_log.insert_audit_event", side_effect=self.insert_audit_event),
            patch("app.db.audit_log.list_audit_events", side_effect=self.list_audit_events),
            patch("app.core.embeddings.embed_texts", side_effect=fake_embed_texts),
            patch("app.core.ingestion.embed_texts", side_effect=fake_embed_texts),
            # Audit writes run inline so tests can assert on them
            patch("app.core.audit._dispatch", side_effect=audit_module._write),
        ]

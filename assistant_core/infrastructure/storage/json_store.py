import hashlib
import json
import os
import threading
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, List, Optional
from uuid import uuid4

from assistant_core.config.settings import settings
from assistant_core.domain.conversation import ConversationStore, Conversation, MessageRecord, MessageRole
from assistant_core.domain.exceptions import StoreError


class JsonConversationStore(ConversationStore):
    """以 JSON 文件保存会话：每个用户一个目录（meta.json + messages.jsonl）。

    同一用户的写入通过按用户的锁串行化，seq 在锁内分配，保证单调递增且不丢消息；
    不同用户使用不同的锁，可以完全并行。
    """

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._conv_root = self._root / "conversations"
        self._conv_root.mkdir(parents=True, exist_ok=True)
        self._registry_lock = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def find_or_create(self, user_id: str) -> Conversation:
        with self._lock_for(user_id):
            return self._find_or_create_locked(user_id)

    def append(
        self,
        user_id: str,
        role: MessageRole,
        content: str,
        meta: Optional[Dict[str, Any]] = None,
    ) -> MessageRecord:
        with self._lock_for(user_id):
            conv = self._find_or_create_locked(user_id)
            cdir = self._conv_dir(user_id)
            record = MessageRecord(
                id=f"m-{uuid4().hex}",
                user_id=user_id,
                role=role,
                content=content,
                seq=conv.message_count + 1,
                created_at=datetime.now(timezone.utc),
                meta=dict(meta or {}),
            )
            try:
                payload = asdict(record)
                payload["created_at"] = _iso(record.created_at)
                line = json.dumps(payload, ensure_ascii=False)
                with (cdir / "messages.jsonl").open("a", encoding="utf-8") as f:
                    f.write(line + "\n")
            except (OSError, TypeError, ValueError) as e:
                raise StoreError(code="STORE_WRITE_ERROR", message=str(e))
            conv.message_count = record.seq
            conv.updated_at = record.created_at
            self._write_meta(cdir, conv)
            return record

    def list_messages(self, user_id: str) -> List[MessageRecord]:
        msgs_path = self._conv_dir(user_id) / "messages.jsonl"
        items: List[MessageRecord] = []
        if not msgs_path.exists():
            return items
        with self._lock_for(user_id):
            lines = msgs_path.read_text(encoding="utf-8").splitlines()
        for line in lines:
            try:
                items.append(self._to_message(json.loads(line)))
            except (KeyError, TypeError, ValueError):
                continue
        items.sort(key=lambda m: m.seq)
        return items

    def _find_or_create_locked(self, user_id: str) -> Conversation:
        cdir = self._conv_dir(user_id)
        meta_path = cdir / "meta.json"
        if meta_path.exists():
            try:
                data = json.loads(meta_path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                raise StoreError(code="STORE_READ_ERROR", message=str(e))
            return Conversation(
                user_id=data["user_id"],
                created_at=_parse_dt(data["created_at"]),
                updated_at=_parse_dt(data["updated_at"]),
                message_count=int(data.get("message_count", 0)),
                meta=data.get("meta") or {},
            )
        cdir.mkdir(parents=True, exist_ok=True)
        now = datetime.now(timezone.utc)
        conv = Conversation(user_id=user_id, created_at=now, updated_at=now)
        self._write_meta(cdir, conv)
        return conv

    def _lock_for(self, user_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = self._locks[user_id] = threading.Lock()
            return lock

    def _conv_dir(self, user_id: str) -> Path:
        digest = hashlib.sha256(user_id.encode("utf-8")).hexdigest()[:32]
        return self._conv_root / f"u-{digest}"

    def _write_meta(self, cdir: Path, conv: Conversation) -> None:
        meta_path = cdir / "meta.json"
        tmp_path = cdir / f"meta.{uuid4().hex}.json.tmp"
        obj = {
            "user_id": conv.user_id,
            "created_at": _iso(conv.created_at),
            "updated_at": _iso(conv.updated_at),
            "message_count": conv.message_count,
            "meta": conv.meta,
        }
        try:
            tmp_path.write_text(json.dumps(obj, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, meta_path)
        except OSError as e:
            raise StoreError(code="STORE_WRITE_ERROR", message=str(e))

    def _to_message(self, data: Dict[str, Any]) -> MessageRecord:
        return MessageRecord(
            id=data["id"],
            user_id=data["user_id"],
            role=data["role"],
            content=data.get("content") or "",
            seq=int(data["seq"]),
            created_at=_parse_dt(data["created_at"]),
            meta=data.get("meta") or {},
        )


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_dt(raw: Any) -> datetime:
    return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))

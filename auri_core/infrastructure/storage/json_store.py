import json
import os
import shutil
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, List, Optional
from uuid import uuid4

from auri_core.config.settings import settings
from auri_core.domain.conversation import MessageRecord, MessageStore
from auri_core.domain.exceptions import StoreError


def _iso(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class JsonMessageStore(MessageStore):
    """以 JSON Lines 保存会话消息的本地存储，供离线/演示模式和导出使用。

    目录结构：<root>/sessions/<session_id>/messages.jsonl 与 meta.json。
    """

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._sessions_root = self._root / "sessions"
        self._sessions_root.mkdir(parents=True, exist_ok=True)

    def create_session(self, lang: str, session_id: Optional[str] = None) -> str:
        sid = session_id or f"s-{uuid4().hex}"
        sdir = self._sessions_root / sid
        sdir.mkdir(parents=True, exist_ok=True)
        self._write_meta(sdir, {"id": sid, "lang": lang, "created_at": _iso(datetime.now(timezone.utc))})
        return sid

    def add_message(self, message: MessageRecord) -> None:
        sdir = self._sessions_root / message.session_id
        if not sdir.exists():
            raise StoreError(code="SESSION_NOT_FOUND", message=message.session_id, http_status=404)
        try:
            payload = asdict(message)
            payload["created_at"] = _iso(message.created_at)
            line = json.dumps(payload, ensure_ascii=False)
            with (sdir / "messages.jsonl").open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except (OSError, TypeError, ValueError) as e:
            raise StoreError(code="STORE_WRITE_ERROR", message=str(e))

    def list_messages(self, session_id: str) -> List[MessageRecord]:
        msgs_path = self._sessions_root / session_id / "messages.jsonl"
        items: List[MessageRecord] = []
        if not msgs_path.exists():
            return items
        try:
            lines = msgs_path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            raise StoreError(code="STORE_READ_ERROR", message=str(e))
        for line in lines:
            try:
                items.append(self._to_message(json.loads(line)))
            except (ValueError, KeyError):
                continue
        items.sort(key=lambda m: m.created_at)
        return items

    def delete_session(self, session_id: str) -> None:
        sdir = self._sessions_root / session_id
        if not sdir.exists():
            raise StoreError(code="SESSION_NOT_FOUND", message=session_id, http_status=404)
        try:
            shutil.rmtree(sdir)
        except OSError as e:
            raise StoreError(code="STORE_DELETE_ERROR", message=str(e))

    def _write_meta(self, sdir: Path, meta: Dict[str, Any]) -> None:
        meta_path = sdir / "meta.json"
        tmp_path = sdir / f"meta.{uuid4().hex}.json.tmp"
        try:
            tmp_path.write_text(json.dumps(meta, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, meta_path)
        except OSError as e:
            raise StoreError(code="STORE_WRITE_ERROR", message=str(e))

    def _to_message(self, data: Dict[str, Any]) -> MessageRecord:
        return MessageRecord(
            id=data["id"],
            session_id=data["session_id"],
            role=data["role"],
            content=data.get("content") or "",
            created_at=datetime.fromisoformat(str(data["created_at"]).replace("Z", "+00:00")),
            meta=data.get("meta") or {},
        )

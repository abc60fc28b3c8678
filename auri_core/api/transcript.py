"""会话记录导出。

唯一一条直接读取消息存储的路径：按创建时间顺序读取某个会话的消息，
生成带时间戳和说话人标签的纯文本记录。
"""

from datetime import datetime, timezone
from typing import Optional

from auri_core.domain.conversation import MessageStore
from auri_core.prompts import get_string

RULE_WIDTH = 50
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def export_session_as_text(
    store: MessageStore,
    session_id: str,
    *,
    language: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    labels = get_string(language, "export")
    exported_at = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d")
    parts = [
        f"{labels['title']}\n{labels['exported_on']}: {exported_at}\n\n",
        "=" * RULE_WIDTH + "\n\n",
    ]
    for message in store.list_messages(session_id):
        timestamp = message.created_at.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)
        speaker = labels["user"] if message.role == "user" else labels["assistant"]
        parts.append(f"[{timestamp}] {speaker}:\n{message.content}\n\n")
    return "".join(parts)

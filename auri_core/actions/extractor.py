"""从助手回复中推导 ActionPlan。

plan() 是纯函数：不做 I/O（文案在首次使用时从包内 YAML 读取并缓存），
同样的输入总是得到结构相等的结果，并且永远不会抛异常，
内部出错时退化为最小计划（无要点、默认追问、只有兜底的日记动作）。
"""

from typing import Iterable, List, Optional

from auri_core.actions.rules import ACTION_RULES, QUICK_REPLY_RULES, ActionRule, QuickReplyRule
from auri_core.domain.actions import Action, ActionPlan, LogJournalAction, dedupe_actions
from auri_core.infrastructure.logging.logger import logger
from auri_core.prompts import get_string

BULLET_MARKERS = ("•", "-")
MAX_BULLETS = 3

# 文案文件读取失败时的兜底（瑞典语）
_LAST_RESORT_QUESTION = "Vad känns möjligt att börja med?"
_LAST_RESORT_JOURNAL_TITLE = "Auri-samtal"


def extract_bullets(reply: str, limit: int = MAX_BULLETS) -> List[str]:
    bullets: List[str] = []
    for line in reply.splitlines():
        stripped = line.strip()
        if not stripped.startswith(BULLET_MARKERS):
            continue
        text = stripped[1:].strip()
        if not text:
            continue
        bullets.append(text)
        if len(bullets) >= limit:
            break
    return bullets


def extract_question(reply: str, fallback: str) -> str:
    for line in reversed(reply.splitlines()):
        stripped = line.strip()
        if stripped.endswith("?"):
            return stripped
    return fallback


def match_actions(user_text: str, reply: str, rules: Optional[Iterable[ActionRule]] = None) -> List[Action]:
    return [rule.action for rule in (ACTION_RULES if rules is None else rules) if rule.matches(user_text, reply)]


def journal_action(user_text: str, reply: str, language: Optional[str]) -> LogJournalAction:
    journal = get_string(language, "journal")
    content = f"{journal['question_label']}: {user_text}\n{journal['answer_label']}: {reply}"
    return LogJournalAction(title=journal["title"], content=content)


def quick_replies(
    user_text: str,
    language: Optional[str] = None,
    rules: Optional[Iterable[QuickReplyRule]] = None,
) -> List[str]:
    """只根据用户原话给出快捷回复，没有命中时返回两条通用建议。"""

    for rule in QUICK_REPLY_RULES if rules is None else rules:
        if rule.matches(user_text):
            return list(get_string(language, f"quick_replies.{rule.name}"))[:2]
    return list(get_string(language, "quick_replies.default"))[:2]


def plan(assistant_reply: str, user_text: str, language: Optional[str] = None) -> ActionPlan:
    """生成行动计划。

    1. 要点：以 • 或 - 开头的行，取前三条并去掉标记。
    2. 追问：倒序查找第一条以 ? 结尾的行，找不到用本地化默认问题。
    3. 规则动作：每条规则同时匹配用户原话和回复，命中即加入。
    4. 兜底：总是追加一条记录本轮问答的 log_journal。
    5. 按值去重，保持顺序。
    6. 快捷回复：只看用户原话。
    """

    reply = assistant_reply or ""
    text = user_text or ""
    try:
        actions = match_actions(text, reply)
        actions.append(journal_action(text, reply, language))
        return ActionPlan(
            text=reply,
            bullets=extract_bullets(reply),
            question=extract_question(reply, get_string(language, "fallback_question")),
            actions=dedupe_actions(actions),
            quick_replies=quick_replies(text, language),
        )
    except Exception as exc:
        logger.error(
            "action_extractor.degraded",
            extra={"extra": {"error": repr(exc), "language": language}},
        )
        return minimal_plan(reply, text, language)


def minimal_plan(reply: str, user_text: str, language: Optional[str] = None) -> ActionPlan:
    try:
        question = get_string(language, "fallback_question")
        fallback = journal_action(user_text, reply, language)
    except Exception:
        question = _LAST_RESORT_QUESTION
        fallback = LogJournalAction(
            title=_LAST_RESORT_JOURNAL_TITLE,
            content=f"Fråga: {user_text}\nSvar: {reply}",
        )
    return ActionPlan(text=reply, bullets=[], question=question, actions=[fallback], quick_replies=[])

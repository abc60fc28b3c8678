"""关键词规则表。

每条规则是 (pattern, action) 对，按顺序逐条测试，新增规则只需往表里追加，
不需要改动控制流。正则同时包含瑞典语和英语关键词，
换成其他语言时需要维护对应的规则表。
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Pattern

from auri_core.domain.actions import (
    Action,
    AddPlanAction,
    NavAction,
    OpenRoleplayAction,
    StartExerciseAction,
)


@dataclass(frozen=True)
class ActionRule:
    name: str
    pattern: Pattern[str]
    action: Action

    def matches(self, *texts: Optional[str]) -> bool:
        return any(text and self.pattern.search(text) for text in texts)


@dataclass(frozen=True)
class QuickReplyRule:
    """命中时使用 strings.yaml 中 quick_replies.<name> 的文案。"""

    name: str
    pattern: Pattern[str]

    def matches(self, text: Optional[str]) -> bool:
        return bool(text and self.pattern.search(text))


def _rx(expr: str) -> Pattern[str]:
    return re.compile(expr, re.IGNORECASE)


ACTION_RULES: List[ActionRule] = [
    ActionRule(
        name="sleep",
        pattern=_rx(r"sömn|somna|sova|sover|sleep"),
        action=StartExerciseAction(id="breath_478", label="4-7-8"),
    ),
    ActionRule(
        name="anxiety",
        pattern=_rx(r"oro|ångest|panik|anxiety|panic"),
        action=StartExerciseAction(id="ground_54321", label="5-4-3-2-1"),
    ),
    ActionRule(
        name="visit",
        pattern=_rx(r"besök|doktor|läkare|visit|doctor"),
        action=NavAction(to="/besok", label="Besök"),
    ),
    ActionRule(
        name="plan",
        pattern=_rx(r"mål|plan|habit|vana"),
        action=AddPlanAction(title="Ett mikrosteg/dag (2-min start)"),
    ),
    ActionRule(
        name="boundaries",
        pattern=_rx(r"gränser|säga nej|boundar"),
        action=OpenRoleplayAction(id="boundary-setting"),
    ),
    ActionRule(
        name="conflict",
        pattern=_rx(r"konflikt|bråk|conflict"),
        action=OpenRoleplayAction(id="conflict-resolution"),
    ),
]

QUICK_REPLY_RULES: List[QuickReplyRule] = [
    QuickReplyRule(name="sleep", pattern=_rx(r"sömn|sova|sover|sleep")),
    QuickReplyRule(name="anxiety", pattern=_rx(r"oro|ångest|anxiety|panik|panic")),
]

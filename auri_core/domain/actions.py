"""Auri 行动建议与行动计划模型。

Action 是一个封闭的变体集合，每个变体都是 frozen dataclass：
相同变体且字段值相同即视为同一个 Action（dataclass 自动生成的 __eq__/__hash__），
去重直接依赖值相等，而不是把对象序列化成字符串再比较。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Union


ExerciseId = Literal["breath_478", "ground_54321", "note_1line"]
EXERCISE_IDS = ("breath_478", "ground_54321", "note_1line")


@dataclass(frozen=True)
class NavAction:
    to: str
    label: Optional[str] = None
    type: Literal["nav"] = "nav"


@dataclass(frozen=True)
class StartExerciseAction:
    id: ExerciseId
    label: Optional[str] = None
    type: Literal["start_exercise"] = "start_exercise"

    def __post_init__(self) -> None:
        if self.id not in EXERCISE_IDS:
            raise ValueError(f"Unknown exercise id: {self.id!r}")


@dataclass(frozen=True)
class AddPlanAction:
    title: str
    type: Literal["add_plan"] = "add_plan"


@dataclass(frozen=True)
class LogJournalAction:
    title: str
    content: str
    type: Literal["log_journal"] = "log_journal"


@dataclass(frozen=True)
class OpenRoleplayAction:
    id: str
    type: Literal["open_roleplay"] = "open_roleplay"


Action = Union[NavAction, StartExerciseAction, AddPlanAction, LogJournalAction, OpenRoleplayAction]

_ACTION_TYPES = {
    "nav": NavAction,
    "start_exercise": StartExerciseAction,
    "add_plan": AddPlanAction,
    "log_journal": LogJournalAction,
    "open_roleplay": OpenRoleplayAction,
}


def action_to_dict(action: Action) -> Dict[str, Any]:
    """转成前端/持久化使用的 JSON 结构，未设置的 label 不输出。"""

    payload: Dict[str, Any] = {"type": action.type}
    for name, value in vars(action).items():
        if name == "type" or value is None:
            continue
        payload[name] = value
    return payload


def action_from_dict(data: Dict[str, Any]) -> Action:
    """action_to_dict 的逆操作，未知类型抛 ValueError。"""

    kind = data.get("type")
    cls = _ACTION_TYPES.get(kind)
    if cls is None:
        raise ValueError(f"Unknown action type: {kind!r}")
    fields = {k: v for k, v in data.items() if k != "type"}
    return cls(**fields)


def dedupe_actions(actions: List[Action]) -> List[Action]:
    """按值去重，保留第一次出现的顺序。"""

    seen = set()
    out: List[Action] = []
    for action in actions:
        if action in seen:
            continue
        seen.add(action)
        out.append(action)
    return out


@dataclass
class ActionPlan:
    """从一次回复中推导出的行动计划。

    - text: 助手完整回复。
    - bullets: 最多 3 条要点。
    - question: 结尾追问（没有时用本地化的默认问题）。
    - actions: 去重后的行动建议，至少包含兜底的 log_journal。
    - quick_replies: 快捷回复建议。
    """

    text: str
    bullets: List[str]
    question: str
    actions: List[Action]
    quick_replies: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "bullets": list(self.bullets),
            "question": self.question,
            "actions": [action_to_dict(a) for a in self.actions],
            "quickReplies": list(self.quick_replies),
        }

"""本地化文案加载工具。

按语言(locale) 从 prompts/<locale>/strings.yaml 读取 Auri 的固定文案
（默认追问、道歉文案、日记标题、快捷回复等）。未知语言回退到瑞典语。
"""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml


PROMPTS_DIR = Path(__file__).resolve().parent
DEFAULT_LOCALE = "sv"

_cache: Dict[str, Dict[str, Any]] = {}


def _normalize(locale: Optional[str]) -> str:
    """只取语言部分，例如 "sv-SE" -> "sv"。"""

    base = (locale or DEFAULT_LOCALE).replace("_", "-").split("-", 1)[0].lower()
    if not (PROMPTS_DIR / base / "strings.yaml").exists():
        return DEFAULT_LOCALE
    return base


def load_strings(locale: Optional[str] = None) -> Dict[str, Any]:
    """根据语言加载文案字典，结果按语言缓存。"""

    key = _normalize(locale)
    if key not in _cache:
        fname = PROMPTS_DIR / key / "strings.yaml"
        _cache[key] = yaml.safe_load(fname.read_text(encoding="utf-8")) or {}
    return _cache[key]


def get_string(locale: Optional[str], path: str) -> Any:
    """按点分路径取文案，例如 ``get_string("sv", "journal.title")``。"""

    node: Any = load_strings(locale)
    for part in path.split("."):
        node = node[part]
    return node

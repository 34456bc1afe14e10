"""Prompt composition for divination readings.

Turns a divination result and the active template texts into the system and
user messages sent to a provider. When the reader asks for an answer in a
language other than the default, an instruction block and a fixed
terminology glossary are appended so hexagram, element and guardian-spirit
names translate consistently.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from jinja2 import Environment

from ..settings import settings

DEFAULT_SYSTEM_PROMPT = (
    "你是一名经验丰富的易学专家，精通小六壬占卜的解读和应用。"
    "你有多年研究传统中国预测学的经验，能够从卦象中解读出深刻的含义并给予有益的指导。"
)
DEFAULT_USER_INTRO = "我需要你根据以下小六壬卦象信息，提供一个详细的解读。"
DEFAULT_USER_GUIDELINES = (
    "请给出详细的解读，包括以下内容：\n"
    "1. 卦象综合解析（包括三宫关系和互动的深层含义）\n"
    "2. 对用户问题的针对性回答（如果有问题）\n"
    "3. 宜忌建议\n"
    "4. 未来发展趋势\n"
    "5. 化解方法或行动建议\n"
    "如果是标题，请用中文数字+顿号开头，如“一、”；副标题，请用中文数字+.开头，如“1.”；"
    "内容，如果有顺序请用如“①②③④⑤⑥⑦⑧⑨⑩” 无顺序用“-”"
)

UNKNOWN = "未知"

ELEMENT_NAMES = {
    "wood": "木",
    "fire": "火",
    "earth": "土",
    "metal": "金",
    "water": "水",
}

HEXAGRAMS = ("大安", "留连", "速喜", "赤口", "小吉", "空亡")
ELEMENTS = ("木", "火", "土", "金", "水")
GUARDIANS = ("青龙", "朱雀", "勾陈", "腾蛇", "白虎", "玄武")

# Closed terminology tables, keyed by language prefix
GLOSSARIES: Dict[str, Dict[str, Any]] = {
    "en": {
        "language": "英文",
        "heading": "术语对照表：",
        "hexagrams": ("Great Peace", "Lingering", "Swift Joy", "Red Mouth", "Lesser Auspice", "Void"),
        "elements": ("Wood", "Fire", "Earth", "Metal", "Water"),
        "guardians": (
            "Azure Dragon",
            "Vermilion Bird",
            "Gou Chen",
            "Soaring Snake",
            "White Tiger",
            "Black Tortoise",
        ),
    },
    "ja": {
        "language": "日文",
        "heading": "用語対照表：",
        "hexagrams": (
            "大安（たいあん）",
            "留連（りゅうれん）",
            "速喜（そっき）",
            "赤口（しゃっこう）",
            "小吉（しょうきち）",
            "空亡（くうぼう）",
        ),
        "elements": ("木", "火", "土", "金", "水"),
        "guardians": (
            "青龍（せいりゅう）",
            "朱雀（すざく）",
            "勾陳（こうちん）",
            "騰蛇（とうだ）",
            "白虎（びゃっこ）",
            "玄武（げんぶ）",
        ),
    },
    "ko": {
        "language": "韩文",
        "heading": "용어 대조표:",
        "hexagrams": ("대안", "유련", "속희", "적구", "소길", "공망"),
        "elements": ("목", "화", "토", "금", "수"),
        "guardians": ("청룡", "주작", "구진", "등사", "백호", "현무"),
    },
}

LANGUAGE_INSTRUCTION = (
    "输出语言要求：请用{language}撰写最终回答。"
    "分析与理解过程以中文进行，术语翻译按下表执行，首次出现请保留中文括注。"
)

_env = Environment(trim_blocks=True, lstrip_blocks=True, autoescape=False)

USER_TEMPLATE = _env.from_string(
    """{{ intro }}

起卦时间: {{ timestamp }}
{% if query %}

用户占问: {{ query }}
{% endif %}
{% if palaces %}

三宫卦信息：
{% for palace in palaces %}
{{ palace.label }}: {{ palace.name }} (五行:{{ palace.element }}) (六神:{{ palace.guardian }})
{% endfor %}
{% endif %}

{{ guidelines }}"""
)


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


@dataclass
class PromptTexts:
    """The three template fragments a prompt is built from."""

    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    user_intro: str = DEFAULT_USER_INTRO
    user_guidelines: str = DEFAULT_USER_GUIDELINES

    @classmethod
    def from_mapping(cls, texts: Optional[Mapping[str, Any]]) -> "PromptTexts":
        """Stored texts with missing or empty fragments filled from the defaults."""
        texts = texts if isinstance(texts, Mapping) else {}
        defaults = cls()
        return cls(
            system_prompt=_text(texts.get("system_prompt")) or defaults.system_prompt,
            user_intro=_text(texts.get("user_intro")) or defaults.user_intro,
            user_guidelines=_text(texts.get("user_guidelines")) or defaults.user_guidelines,
        )


@dataclass
class Hexagram:
    name: Optional[str] = None
    element: Optional[str] = None
    guardian: Optional[str] = None

    @classmethod
    def from_payload(cls, palace: Any) -> Optional["Hexagram"]:
        if not isinstance(palace, Mapping):
            return None
        hexagram = palace.get("hexagram", palace)
        if not isinstance(hexagram, Mapping):
            return None
        guardian = hexagram.get("sixGod") or hexagram.get("six_god") or hexagram.get("guardian")
        return cls(
            name=_text(hexagram.get("name")) or None,
            element=_text(hexagram.get("element")) or None,
            guardian=_text(guardian) or None,
        )


@dataclass
class DivinationResult:
    """Read-only view of a divination result: optional query plus three palaces."""

    query: Optional[str] = None
    sky: Optional[Hexagram] = None
    earth: Optional[Hexagram] = None
    human: Optional[Hexagram] = None
    has_palaces: bool = False

    @classmethod
    def from_payload(cls, payload: Any) -> "DivinationResult":
        """Accept the client's camelCase payload or its snake_case form."""
        if isinstance(payload, DivinationResult):
            return payload
        if not isinstance(payload, Mapping):
            return cls()
        palaces = payload.get("threePalaces") or payload.get("three_palaces")
        if not isinstance(palaces, Mapping):
            return cls(query=_text(payload.get("query")) or None)

        def palace(camel: str, snake: str) -> Optional[Hexagram]:
            return Hexagram.from_payload(palaces.get(camel) or palaces.get(snake))

        return cls(
            query=_text(payload.get("query")) or None,
            sky=palace("skyPalace", "sky_palace"),
            earth=palace("earthPalace", "earth_palace"),
            human=palace("humanPalace", "human_palace"),
            has_palaces=True,
        )


@dataclass
class ComposedPrompt:
    system: str
    user: str

    def messages(self) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.user},
        ]


def element_display_name(element: Optional[str]) -> str:
    """Five-element tag in Chinese script ("wood" -> "木")."""
    if not element:
        return UNKNOWN
    return ELEMENT_NAMES.get(element.strip().lower(), element)


def glossary_language(target_language: Optional[str]) -> Optional[str]:
    """Glossary key for a language code ("en-US" -> "en"), if one exists."""
    lang = (target_language or "").strip().lower()
    for key in GLOSSARIES:
        if lang.startswith(key):
            return key
    return None


def build_glossary(target_language: Optional[str]) -> str:
    """Terminology table for a target language; empty for unsupported ones."""
    key = glossary_language(target_language)
    if key is None:
        return ""
    table = GLOSSARIES[key]

    def pairs(source, translated) -> str:
        return ", ".join(f"{s}={t}" for s, t in zip(source, translated))

    lines = [table["heading"]]
    lines.extend(f"{s}={t}" for s, t in zip(HEXAGRAMS, table["hexagrams"]))
    lines.append("五行：" + pairs(ELEMENTS, table["elements"]))
    lines.append("六神：" + pairs(GUARDIANS, table["guardians"]))
    return "\n".join(lines)


def format_timestamp(now: Optional[datetime] = None) -> str:
    try:
        tz = ZoneInfo(settings.prompt_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        tz = None
    moment = now.astimezone(tz) if now is not None else datetime.now(tz)
    return moment.strftime("%Y/%m/%d %H:%M:%S")


def _palace_lines(result: DivinationResult) -> List[Dict[str, str]]:
    rows = []
    for label, hexagram in (("天宫", result.sky), ("地宫", result.earth), ("人宫", result.human)):
        hexagram = hexagram or Hexagram()
        rows.append(
            {
                "label": label,
                "name": hexagram.name or "-",
                "element": element_display_name(hexagram.element),
                "guardian": hexagram.guardian or UNKNOWN,
            }
        )
    return rows


def compose(
    result: Any,
    template: Optional[PromptTexts] = None,
    target_language: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ComposedPrompt:
    """Build the system and user messages for a reading.

    Args:
        result: Divination result (``DivinationResult`` or its JSON payload)
        template: Template texts; built-in defaults when omitted. Fragments
            that are not strings are treated as empty.
        target_language: Requested output language code; defaults to
            ``settings.default_language``
        now: Reading time, mainly for tests

    Returns:
        ComposedPrompt with ``system`` and ``user`` text
    """
    result = DivinationResult.from_payload(result)
    template = template if template is not None else PromptTexts()

    user = USER_TEMPLATE.render(
        intro=_text(template.user_intro),
        timestamp=format_timestamp(now),
        query=result.query,
        palaces=_palace_lines(result) if result.has_palaces else [],
        guidelines=_text(template.user_guidelines),
    )

    language = (_text(target_language) or settings.default_language).strip().lower()
    default_language = settings.default_language.lower()
    if language and not language.startswith(default_language):
        key = glossary_language(language)
        language_name = GLOSSARIES[key]["language"] if key else language
        user += "\n" + LANGUAGE_INSTRUCTION.format(language=language_name)
        glossary = build_glossary(language)
        if glossary:
            user += "\n" + glossary

    return ComposedPrompt(system=_text(template.system_prompt), user=user)

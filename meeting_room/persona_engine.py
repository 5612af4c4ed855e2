"""Persona prompt construction and structured-response parsing.

Everything here is pure: no network, no stored state. The prompt forces a
three-stage ANALYZE / CRITIQUE / STRATEGY reasoning pass and a four-part
answer ending in a tendency score line, which parse_response() reads back.
"""

import re
from dataclasses import dataclass

from meeting_room.models import DebateContext, Persona, Reasoning, SourceReference

DEFAULT_TENDENCY_SCORE = 5
MAX_SEARCH_KEYWORDS = 8

_SCORE_RE = re.compile(r"(?:傾向度分數|tendency score)\s*[：:]\s*(\d+)\s*/\s*10", re.IGNORECASE)

_ANALYZE = r"(?:ANALYZE|ANALYSIS|分析|解析)"
_CRITIQUE = r"(?:CRITIQUE|批判|質疑)"
_STRATEGY = r"(?:STRATEGY|策略|戰略)"
_SCORE_LEAD = r"(?:傾向度分數|tendency score)"
_REASONING_RES = {
    "analyze": re.compile(rf"{_ANALYZE}\s*[：:](.+?)(?={_CRITIQUE}\s*[：:]|{_STRATEGY}\s*[：:]|{_SCORE_LEAD}|\Z)",
                          re.IGNORECASE | re.DOTALL),
    "critique": re.compile(rf"{_CRITIQUE}\s*[：:](.+?)(?={_STRATEGY}\s*[：:]|{_SCORE_LEAD}|\Z)",
                           re.IGNORECASE | re.DOTALL),
    "strategy": re.compile(rf"{_STRATEGY}\s*[：:](.+?)(?={_SCORE_LEAD}|\Z)",
                           re.IGNORECASE | re.DOTALL),
}

_CHALLENGE_PATTERNS = [
    re.compile(p, re.IGNORECASE) for p in (
        r"我必須質疑", r"我要挑戰", r"我不同意", r"我反對", r"這忽略了", r"這存在問題",
        r"\bI must (?:question|challenge)\b", r"\bI (?:strongly )?disagree\b",
        r"\bI (?:object to|oppose|reject)\b", r"\b(?:overlooks|ignores)\b", r"\bis flawed\b",
    )
]
_EVIDENCE_PATTERNS = [
    re.compile(p, re.IGNORECASE) for p in (
        r"根據.*資料", r"數據顯示", r"研究表明", r"事實證明", r"從.*角度", r"專業分析",
        r"\baccording to\b", r"\b(?:data|figures|numbers) (?:show|shows|suggest|suggests|indicate|indicates)\b",
        r"\b(?:research|studies|evidence) (?:show|shows|suggest|suggests|indicate|indicates)\b",
        r"\bfrom an? [\w\s-]+ (?:perspective|standpoint)\b",
    )
]
_QUESTION_PATTERNS = [
    re.compile(p, re.IGNORECASE | re.MULTILINE) for p in (
        r"如何解釋", r"怎麼看待", r"是否考慮",
        r"\bhow (?:do|would|can) you (?:explain|justify|reconcile)\b", r"\bhave you considered\b",
        r"[?？]\s*$",
    )
]
_WORD_RE = re.compile(r"[㐀-鿿]|[A-Za-z0-9]+(?:['’-][A-Za-z0-9]+)*")

# Identity/role markers → extra search keywords.
_ROLE_KEYWORDS: list[tuple[tuple[str, ...], list[str]]] = [
    (("ceo", "chief executive", "執行長"), ["corporate strategy", "business model", "market competition"]),
    (("cto", "chief technology", "技術長"), ["technology trends", "emerging technology", "technical architecture"]),
    (("cfo", "chief financial", "財務長"), ["financial analysis", "return on investment", "cost-benefit"]),
    (("environment", "sustainab", "環保", "環境"), ["environmental impact", "sustainable development", "green technology"]),
    (("legal", "lawyer", "counsel", "法律", "律師"), ["laws and regulations", "compliance requirements", "legal risk"]),
    (("market", "analyst", "市場", "分析師"), ["market research", "consumer behavior", "market trends"]),
]


@dataclass
class StructureReport:
    has_direct_challenge: bool
    has_evidence_support: bool
    has_strategic_question: bool
    has_tendency_score: bool
    word_count: int
    quality_score: int           # 0-100, advisory only


@dataclass
class ParsedResponse:
    clean_content: str
    tendency_score: int
    reasoning: Reasoning | None
    structure: StructureReport


@dataclass
class ReasoningReport:
    overall_quality: str         # "excellent", "good", "fair", "poor"
    strengths: list[str]
    suggestions: list[str]


_LABELS = {
    "en": {
        "persona": "[Persona]",
        "identity": "Identity",
        "directive": "Prime directive",
        "tone": "Debate style",
        "bias": "Default bias",
        "focus": "Research focus",
        "topic": "[Debate topic]",
        "situation": "[Current situation]",
        "round": "- Round: {round} of {max_rounds}",
        "participants": "- Participants: {names}",
        "search": "[Latest verified information]\n"
                  "Use these facts and figures from web search to support or rebut arguments:",
        "source": "Source",
        "history": "[Debate history]",
        "last": "[Last statement]",
        "claims": '{name} argued: "{content}"',
        "unknown": "Unknown",
        "previous": "The previous speaker",
        "sep": ", ",
    },
    "zh-TW": {
        "persona": "【替身身份設定】",
        "identity": "身份",
        "directive": "核心原則",
        "tone": "辯論風格",
        "bias": "預設傾向",
        "focus": "搜尋重點",
        "topic": "【辯論議題】",
        "situation": "【當前狀況】",
        "round": "- 辯論回合：第 {round} 回合（共 {max_rounds} 回合）",
        "participants": "- 參與者：{names}",
        "search": "【最新查證資訊】\n請務必利用以下從網路搜尋獲得的最新事實/數據來支持或反駁你的論點：",
        "source": "來源",
        "history": "【辯論歷史】",
        "last": "【上次發言重點】",
        "claims": "{name} 主張：「{content}」",
        "unknown": "未知",
        "previous": "前一位發言者",
        "sep": "、",
    },
}

_REASONING_EN = """
[Mandatory chain of thought]
Before answering, work through these three stages (this reasoning is not shown to the audience):

Stage 1: ANALYZE
- Examine the core claims and assumptions of {target}
- Find the weakest link, or the part that conflicts with your prime directive
- Look for logical gaps, flawed data or bias

Stage 2: CRITIQUE
- Attack the weak points from your professional background and prime directive
- Use the latest search information to find concrete evidence for your rebuttal
- Keep the critique constructive and grounded in facts

Stage 3: STRATEGY
- Decide how to organise your argument for maximum persuasion
- Plan how to steer the debate in your favour
- Prepare a pointed counter-question

[Mandatory output structure]
Your final statement must follow this structure exactly:

1. Direct citation and challenge (1-2 sentences):
   e.g. "I must challenge [speaker]'s claim that [point], because it ignores [key factor]."
2. Evidence-backed rebuttal (3-5 sentences):
   e.g. "According to recent data, [figure] shows [your view]. From a [your field] perspective, [analysis]."
3. Strategic question (1 sentence):
   e.g. "So how do you explain [specific contradiction], [speaker]?"
4. Tendency score on its own final line, formatted exactly as:
   Tendency score: N/10
   where N is an integer from 1 (fully oppose) to 10 (fully support).

[Quality requirements]
- Keep the statement between 150 and 250 words
- Reflect your identity and prime directive; match your debate style
- Every claim needs a reason or evidence; avoid empty rhetoric

Begin your reasoning and statement now:
"""

_REASONING_ZH = """
【Chain of Thought 強制性推理流程】
在回應之前，你必須按照以下三個步驟進行深度思考（這些思考過程不會顯示給用戶）：

步驟一：解析階段 (ANALYZE)
- 仔細分析{target}中的核心論點和假設
- 識別其中最薄弱的環節或與你核心原則衝突的部分
- 找出可能存在的邏輯漏洞、數據缺陷或偏見

步驟二：批判階段 (CRITIQUE)
- 基於你的專業背景和核心原則，對識別出的薄弱點進行深度批判
- 結合最新搜尋資訊，尋找能夠反駁或支持你觀點的具體證據
- 確保你的批判是建設性的，而非單純的否定

步驟三：策略階段 (STRATEGY)
- 決定如何組織你的論點以達到最大說服力
- 規劃如何將辯論引導向對你有利的方向
- 準備針鋒相對的質疑和反問

【強制性輸出結構】
你的最終發言必須嚴格遵循以下結構：

1. 直接引用與挑戰 (30-40字)：
   範例：「我必須質疑 [發言者] 提到的 [具體論點]，因為這忽略了 [關鍵因素]」
2. 證據支持的反駁 (80-120字)：
   範例：「根據最新資料顯示，[具體數據] 表明 [你的觀點]。從 [你的專業角度] 來看，[詳細分析]」
3. 戰略性質疑 (20-30字)：
   範例：「那麼，[發言者] 如何解釋 [具體矛盾] 這個問題？」
4. 傾向度評分，單獨一行，格式：
   傾向度分數：N/10
   N 為 1（完全反對）到 10（完全支持）的整數。

【質量要求】
- 總字數控制在 150-250 字之間
- 必須體現你的專業身份和核心原則，語氣符合你的辯論風格
- 論點必須有理有據，避免空洞的修辭

現在請開始你的深度推理和發言：
"""

_ANALYSIS_TARGETS = {
    "en": ("the last statement", "the current topic"),
    "zh-TW": ("上次發言重點", "當前議題"),
}


def _speaker_name(persona_id: str, fallback: str, personas: list[Persona]) -> str:
    return next((p.name for p in personas if p.id == persona_id), fallback)


def _reasoning_instructions(has_last_statement: bool, language: str) -> str:
    with_last, without_last = _ANALYSIS_TARGETS[language]
    target = with_last if has_last_statement else without_last
    template = _REASONING_ZH if language == "zh-TW" else _REASONING_EN
    return template.format(target=target)


def build_prompt(
    persona: Persona,
    context: DebateContext,
    search_results: list[SourceReference] | None = None,
    language: str = "en",
) -> str:
    """Build the full reasoning prompt for one persona's turn.

    Blocks, in fixed order: persona identity, topic and round metadata,
    search results (only when non-empty), debate history and the
    last-statement challenge target (only once someone has spoken), then
    the three-stage reasoning and output-structure instructions.

    Raises:
        ValueError: If language is not "en" or "zh-TW".
    """
    if language not in _LABELS:
        raise ValueError(f"Unsupported prompt language: {language}")
    labels = _LABELS[language]
    sep = labels["sep"]

    parts = [
        "\n".join([
            labels["persona"],
            f"{labels['identity']}: {persona.identity}",
            f"{labels['directive']}: {persona.prime_directive}",
            f"{labels['tone']}: {persona.tone_style}",
            f"{labels['bias']}: {persona.default_bias}",
            f"{labels['focus']}: {sep.join(persona.rag_focus)}",
            "",
            labels["topic"],
            context.topic,
            "",
            labels["situation"],
            labels["round"].format(round=context.current_round, max_rounds=context.max_rounds),
            labels["participants"].format(names=sep.join(p.name for p in context.active_personas)),
        ])
    ]

    if search_results:
        lines = [labels["search"]]
        for i, result in enumerate(search_results, start=1):
            lines.append(f"{i}. {result.title}\n   {result.snippet}\n   {labels['source']}: {result.url}")
        parts.append("\n".join(lines))

    statements = context.previous_statements
    if statements:
        lines = [labels["history"]]
        for stmt in statements:
            speaker = _speaker_name(stmt.persona_id, stmt.persona_name or labels["unknown"], context.active_personas)
            lines.append(f"{speaker}: {stmt.content} ({stmt.tendency_score}/10)")
        parts.append("\n".join(lines))

        last = statements[-1]
        last_speaker = _speaker_name(last.persona_id, last.persona_name or labels["previous"], context.active_personas)
        parts.append("\n".join([
            labels["last"],
            labels["claims"].format(name=last_speaker, content=last.content),
        ]))

    parts.append(_reasoning_instructions(bool(statements), language).strip())
    return "\n\n".join(parts) + "\n"


def _extract_score(text: str) -> tuple[int, bool]:
    """Return (score, found). Out-of-range or missing scores fall back to the default."""
    matches = _SCORE_RE.findall(text)
    if not matches:
        return DEFAULT_TENDENCY_SCORE, False
    score = int(matches[-1])
    if not 1 <= score <= 10:
        return DEFAULT_TENDENCY_SCORE, True
    return score, True


def _extract_reasoning(text: str) -> Reasoning | None:
    found = {key: rx.search(text) for key, rx in _REASONING_RES.items()}
    if not any(found.values()):
        return None
    return Reasoning(**{key: m.group(1).strip() if m else "" for key, m in found.items()})


def count_words(text: str) -> int:
    """CJK characters count individually; Latin text counts by word."""
    return len(_WORD_RE.findall(text))


def validate_structure(text: str) -> StructureReport:
    has_challenge = any(p.search(text) for p in _CHALLENGE_PATTERNS)
    has_evidence = any(p.search(text) for p in _EVIDENCE_PATTERNS)
    # Score line sits last, so look for the question before it.
    has_question = any(p.search(_SCORE_RE.sub("", text)) for p in _QUESTION_PATTERNS)
    has_score = bool(_SCORE_RE.search(text))
    word_count = count_words(_SCORE_RE.sub("", text))

    quality = 0
    quality += 25 if has_challenge else 0
    quality += 25 if has_evidence else 0
    quality += 25 if has_question else 0
    quality += 15 if has_score else 0
    if 150 <= word_count <= 250:
        quality += 10
    elif 100 <= word_count < 150:
        quality += 5

    return StructureReport(
        has_direct_challenge=has_challenge,
        has_evidence_support=has_evidence,
        has_strategic_question=has_question,
        has_tendency_score=has_score,
        word_count=word_count,
        quality_score=quality,
    )


def parse_response(text: str) -> ParsedResponse:
    """Split a model reply into display content, tendency score and metadata.

    Never raises: a missing or malformed score line yields the default
    score of 5, and missing reasoning markers yield reasoning=None.
    """
    text = text or ""
    score, _ = _extract_score(text)
    clean = _SCORE_RE.sub("", text).strip()
    return ParsedResponse(
        clean_content=clean,
        tendency_score=score,
        reasoning=_extract_reasoning(text),
        structure=validate_structure(text),
    )


def generate_reasoning_report(parsed: ParsedResponse) -> ReasoningReport:
    s = parsed.structure
    if s.quality_score >= 90:
        overall = "excellent"
    elif s.quality_score >= 70:
        overall = "good"
    elif s.quality_score >= 50:
        overall = "fair"
    else:
        overall = "poor"

    strengths: list[str] = []
    suggestions: list[str] = []
    if s.has_direct_challenge:
        strengths.append("Directly challenges the opposing argument")
    else:
        suggestions.append("Challenge the previous argument more directly")
    if s.has_evidence_support:
        strengths.append("Backs claims with evidence")
    else:
        suggestions.append("Cite concrete data or facts")
    if s.has_strategic_question:
        strengths.append("Ends with a strategic question")
    else:
        suggestions.append("Add a pointed counter-question")
    if s.word_count < 100:
        suggestions.append("The statement is too short; develop the argument further")
    if s.word_count > 300:
        suggestions.append("The statement is too long; tighten the wording")

    return ReasoningReport(overall_quality=overall, strengths=strengths, suggestions=suggestions)


def validate_persona(persona: Persona) -> list[str]:
    """Return a list of configuration problems; empty means valid."""
    errors: list[str] = []
    if not (persona.name or "").strip():
        errors.append("Persona name must not be empty")
    if not (persona.identity or "").strip():
        errors.append("Identity must not be empty")
    if not (persona.prime_directive or "").strip():
        errors.append("Prime directive must not be empty")
    if not (persona.tone_style or "").strip():
        errors.append("Tone style must not be empty")
    temperature = persona.temperature
    if isinstance(temperature, bool) or not isinstance(temperature, (int, float)) or not 0.1 <= temperature <= 1.0:
        errors.append("Temperature must be between 0.1 and 1.0")
    if not isinstance(persona.rag_focus, list) or not persona.rag_focus:
        errors.append("At least one research focus is required")
    return errors


def generate_search_keywords(persona: Persona, topic: str) -> list[str]:
    """Topic, the persona's research focus and role-inferred keywords; deduplicated, max 8."""
    keywords = [topic, *persona.rag_focus]
    descriptor = f"{persona.identity} {persona.role}".lower()
    for markers, extra in _ROLE_KEYWORDS:
        if any(m in descriptor for m in markers):
            keywords.extend(extra)
    return list(dict.fromkeys(k for k in keywords if k))[:MAX_SEARCH_KEYWORDS]


def persona_similarity(a: Persona, b: Persona) -> float:
    """Rough 0-1 similarity: focus overlap, temperature closeness, identity word overlap."""
    focus_a, focus_b = set(a.rag_focus), set(b.rag_focus)
    union = focus_a | focus_b
    focus_sim = len(focus_a & focus_b) / len(union) if union else 0.0

    temp_sim = 1 - abs(a.temperature - b.temperature)

    words_a = (a.identity or "").lower().split()
    words_b = (b.identity or "").lower().split()
    longest = max(len(words_a), len(words_b))
    identity_sim = len([w for w in words_a if w in words_b]) / longest if longest else 0.0

    return min(1.0, focus_sim * 0.4 + temp_sim * 0.2 + identity_sim * 0.4)

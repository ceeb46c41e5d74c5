"""长文生成提示词定义与构建。

模板使用 `str.format` 占位符；JSON 示例中的花括号需写成 `{{` / `}}`。
"""

from __future__ import annotations

from typing import Any, Sequence

from src.shared.constants.generation import INITIAL_WORD_TARGET, SECTION_WORD_TARGET

SCOPE_SYSTEM = "longform:system"
SCOPE_OUTLINE = "longform:outline"
SCOPE_SECTION = "longform:section"
SCOPE_FAQ = "longform:faq"
SCOPE_INTRO = "longform:intro"
SCOPE_CONCLUSION = "longform:conclusion"

HTML_WRITER_SYSTEM = "You are an expert content writer. Output only clean HTML with inline styles."

PROMPTS = {
    SCOPE_SYSTEM: {
        "description": "单次生成与大纲共用的系统提示词（JSON 文档契约）",
        "content": """You are an expert SEO content writer. Generate comprehensive, human-written blog content.

TARGET: {target_words}+ words of real, valuable content.

STRUCTURE RULES:
- Never use H1 tags; the site template renders the title
- Use 8-12 H2 sections with 2-3 H3 subsections each
- Include visual boxes: pro tips, warnings, statistics, expert quotes
- Add an FAQ section with 7-10 questions before the conclusion

WRITING STYLE:
- Use contractions and address the reader as "you"
- Short paragraphs (2-4 sentences), varied sentence length
- Take a clear stance

BANNED PHRASES: "In today's fast-paced world", "It's important to note", "Let's dive in",
"Comprehensive guide", "leverage", "utilize", "delve", "Without further ado", "In conclusion".

OUTPUT FORMAT: valid JSON with this exact structure:
{{
  "title": "string (50-60 chars)",
  "meta_description": "string (150-160 chars)",
  "slug": "url-friendly-slug",
  "html_content": "string (all HTML content)",
  "excerpt": "string (2-3 sentences)",
  "faqs": [{{"question": "string", "answer": "string"}}],
  "word_count": 0
}}

Your response MUST be only valid JSON with no text before or after it.
html_content MUST be complete; do not truncate.""",
    },
    SCOPE_OUTLINE: {
        "description": "大纲生成",
        "content": """Create a detailed content outline for: "{topic}"

Output a JSON object with this exact structure:
{{
  "title": "Compelling title (50-60 chars)",
  "meta_description": "Meta description (150-160 chars)",
  "slug": "url-friendly-slug",
  "sections": [
    {{
      "heading": "H2 section title",
      "key_points": ["Point 1", "Point 2", "Point 3"],
      "subsections": [{{"heading": "H3 subsection", "key_points": ["Detail 1", "Detail 2"]}}],
      "visual_components": ["pro_tip", "expert_quote"]
    }}
  ],
  "faq_topics": ["Question 1?", "Question 2?"],
  "key_takeaways": ["Takeaway 1", "Takeaway 2"]
}}

REQUIREMENTS:
- 8-12 main sections (H2)
- 2-3 subsections (H3) per main section
- 7-10 FAQ topics
- 5-7 key takeaways
{extra}
Return ONLY valid JSON.""",
    },
    SCOPE_SECTION: {
        "description": "单章节 HTML 生成",
        "content": """Write section {number} of {total} of a blog post about "{topic}".

SECTION DETAILS:
Heading: {heading}
Key points to cover:
{key_points}

Subsections:
{subsections}

TARGET: {target_words}-{target_words_max} words for this section.

OUTPUT: return ONLY the HTML for this section. Start with <h2> and include every subsection as <h3>.
No JSON wrapper, no markdown.""",
    },
    SCOPE_FAQ: {
        "description": "FAQ 答案合成",
        "content": """Write a comprehensive FAQ section for a blog post about "{topic}".

QUESTIONS TO ANSWER:
{questions}

OUTPUT: return a complete FAQ section as HTML using a CSS-only accordion pattern.
Each answer should be 80-150 words. Include schema.org FAQPage markup.
Return ONLY the HTML for the FAQ section, no JSON wrapper.""",
    },
    SCOPE_INTRO: {
        "description": "引言",
        "content": """Write an engaging introduction (250-350 words) for a blog post titled: "{title}"

Topic: {topic}

Include:
1. A compelling hook
2. What the reader will learn
3. Why it matters to them
4. A quick answer box (50-70 words)

OUTPUT: return ONLY HTML, starting with <p> (no heading).""",
    },
    SCOPE_CONCLUSION: {
        "description": "结语",
        "content": """Write a strong conclusion (200-300 words) for a blog post about "{topic}".

Include:
1. Summary of the main points
2. A call to action
3. Next steps for the reader

OUTPUT: return ONLY HTML.""",
    },
}


def _numbered(items: Sequence[str]) -> str:
    return "\n".join(f"{i}. {x}" for i, x in enumerate(items, start=1))


def build_system_prompt(target_words: int = INITIAL_WORD_TARGET) -> str:
    return PROMPTS[SCOPE_SYSTEM]["content"].format(target_words=target_words)


def build_outline_prompt(topic: str, *, paa_questions: Sequence[str] = ()) -> str:
    extra = ""
    if paa_questions:
        extra = "- Cover these reader questions in faq_topics:\n" + _numbered(list(paa_questions)[:8]) + "\n"
    return PROMPTS[SCOPE_OUTLINE]["content"].format(topic=topic, extra=extra)


def build_section_prompt(section: Any, *, index: int, total: int, topic: str) -> str:
    key_points = _numbered(list(section.key_points)) or "1. Cover the heading thoroughly"
    subsections = "\n".join(
        f"- {s.heading}: {', '.join(s.key_points)}" for s in section.subsections
    ) or "- (choose 2-3 fitting H3 subsections)"
    return PROMPTS[SCOPE_SECTION]["content"].format(
        number=index + 1,
        total=total,
        topic=topic,
        heading=section.heading,
        key_points=key_points,
        subsections=subsections,
        target_words=SECTION_WORD_TARGET,
        target_words_max=int(SECTION_WORD_TARGET * 1.5),
    )


def build_faq_prompt(topic: str, questions: Sequence[str]) -> str:
    return PROMPTS[SCOPE_FAQ]["content"].format(topic=topic, questions=_numbered(questions))


def build_intro_prompt(topic: str, title: str) -> str:
    return PROMPTS[SCOPE_INTRO]["content"].format(topic=topic, title=title or topic)


def build_conclusion_prompt(topic: str) -> str:
    return PROMPTS[SCOPE_CONCLUSION]["content"].format(topic=topic)


def build_full_prompt(
    topic: str,
    *,
    entities: Sequence[str] = (),
    paa_questions: Sequence[str] = (),
    critical_terms: Sequence[str] = (),
    internal_links: Sequence[tuple[str, str]] = (),
) -> str:
    """单次生成的用户提示词：主题 + 实体缺口 + PAA 问题 + 关键 NLP 词 + 内链目标。"""
    parts = [f'Write a comprehensive {INITIAL_WORD_TARGET}+ word blog post about: "{topic}"']
    if entities:
        parts.append(f"\nENTITIES TO INCLUDE: {', '.join(list(entities)[:15])}")
    if paa_questions:
        parts.append(f"\nFAQ QUESTIONS TO ANSWER:\n{_numbered(list(paa_questions)[:8])}")
    if critical_terms:
        parts.append(f"\nCRITICAL NLP TERMS TO USE: {', '.join(list(critical_terms)[:15])}")
    if internal_links:
        links = "\n".join(f"- {title} -> {url}" for title, url in list(internal_links)[:15])
        parts.append(f"\nINTERNAL LINKS TO ADD (use 3-7 word anchors):\n{links}")
    parts.append("\nOUTPUT: return ONLY valid JSON matching the required structure.")
    return "\n".join(parts)

"""Prompt for analyzing a privacy policy."""

TRUNCATION_MARKER = "... [text truncated due to length]"

POLICY_ANALYSIS_PROMPT = """
You are a privacy policy expert analyzing the privacy policy below.

Provide a structured analysis with these sections:

1. summary: a concise summary of the policy in 5-7 bullet points.
2. dataCollection: every type of data collected, grouped by category (personal, device, usage, location, etc.).
3. dataSharing: every third party or recipient the data is shared with, mapped to the purpose.
4. retention: how long data is kept.
5. userRights: the rights users have over their data.
6. score: a privacy-friendliness score from 0 to 100 (higher is better) with a brief explanation.
7. redFlags: concerning practices, each stated as one short sentence.
8. compliance: an assessment against major regulations (GDPR, CCPA, etc.).

Return ONLY a JSON object, with no other text and no markdown fences, using exactly this structure:
{{
  "summary": ["point 1", "point 2"],
  "dataCollection": {{"category": ["item 1", "item 2"]}},
  "dataSharing": {{"recipient": "purpose"}},
  "retention": "description of the retention policy",
  "userRights": ["right 1", "right 2"],
  "score": {{"value": 0, "explanation": "reason for the score"}},
  "redFlags": ["flag 1", "flag 2"],
  "compliance": {{"GDPR": "assessment", "CCPA": "assessment"}}
}}

Policy URL: {url}
Policy Title: {title}
Company: {company}
Last Updated: {last_updated}

Policy Text:
{text}
"""


def truncate_policy_text(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER


def build_prompt(
    *,
    url: str,
    title: str | None,
    text: str,
    company: str | None = None,
    last_updated: str | None = None,
    max_chars: int = 30_000,
) -> str:
    return POLICY_ANALYSIS_PROMPT.format(
        url=url,
        title=title or "Unknown",
        company=company or "Unknown",
        last_updated=last_updated or "Unknown",
        text=truncate_policy_text(text, max_chars),
    )

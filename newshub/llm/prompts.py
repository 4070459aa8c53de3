"""Prompt templates for article enrichment."""

SYSTEM_EDITOR = """You are a news editor annotating articles for a reader-facing news app.
Be concise and neutral. Never add facts that are not in the article."""

ENRICH_ARTICLE = """Annotate this news article.

TITLE: {title}
SOURCE: {source}
CONTENT:
{content}

Respond in EXACTLY this JSON format (no markdown, no extra text):
{{
    "summary": "2-3 sentence summary of the article",
    "sentiment": "positive|negative|neutral",
    "keywords": ["up to 8 short keywords"],
    "topics": ["1-3 broad topic labels, e.g. technology, politics, business"]
}}"""

# JSON schema for the enrichment reply, for providers that enforce structured output
ENRICHMENT_SCHEMA = {
    "type": "object",
    "properties": {
        "summary": {"type": "string"},
        "sentiment": {"type": "string", "enum": ["positive", "negative", "neutral"]},
        "keywords": {"type": "array", "items": {"type": "string"}},
        "topics": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["summary", "sentiment", "keywords", "topics"],
    "additionalProperties": False,
}

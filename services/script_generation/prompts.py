"""Prompt templates for script, title, description and hashtag generation."""

import math
import re

from shared.models import SubjectProfile, VideoStyle
from shared.utils import config

DEFAULT_TONE = "engaging and informative"
DEFAULT_STYLE = "conversational yet professional"
TARGET_AUDIENCE = "sports fans and general audience"
AVOID_TOPICS = ("controversial politics", "personal scandals", "unverified claims")

STYLE_HINTS = {
    VideoStyle.DOCUMENTARY: "Use a calm, informative documentary style with detailed facts and context.",
    VideoStyle.ENERGETIC: "Use an energetic, exciting tone with dynamic language and enthusiasm.",
    VideoStyle.INSPIRATIONAL: "Focus on the inspirational aspects of their journey and achievements.",
    VideoStyle.HIGHLIGHT: "Emphasize the most exciting career highlights and memorable moments.",
}

SCRIPT_SYSTEM_PROMPT = (
    "You are a professional sports content creator. Create a {duration}-second script about "
    "{name}, a {sport} player. Focus on their achievements and impact on the sport."
)

SCRIPT_TEMPLATE = """Create an engaging {duration}-second script about {name}, a professional {sport} player.

Context:
- Sport: {sport}
- Position: {position}
- Team: {team}
- Nationality: {nationality}
- Biography: {biography}
- Key Achievements: {achievements}

Requirements:
- Duration: Exactly {duration} seconds when spoken at {wpm} words per minute (about {target_words} words)
- Tone: {tone}
- Style: {style}
- Target audience: {audience}
- Include specific statistics and achievements
- Make it engaging and shareable
- Avoid: {avoid}

Structure:
1. Hook (first 5 seconds) - grab attention immediately
2. Background (next 20-30% of time) - brief personal/career background
3. Achievements (middle 40-50% of time) - major accomplishments and records
4. Impact/Legacy (final 20-30% of time) - influence on sport and culture
5. Call to action (last 3 seconds) - encourage engagement

Output format:
- Plain text script only
- Natural speech patterns
- Include [PAUSE] markers for dramatic effect
- Mark emphasis with *asterisks*
- End with engaging question or statement

Script:"""

TITLE_SYSTEM_PROMPT = (
    "You are an expert at creating engaging, click-worthy titles for sports content. "
    "Keep titles under 60 characters."
)

TITLE_TEMPLATE = """Generate a compelling, click-worthy title for a sports reel about {name}.

Context:
- Celebrity: {name}
- Sport: {sport}
- Key achievement/focus: {focus}
- Target audience: Sports fans and social media users

Requirements:
- Maximum 60 characters
- Engaging and shareable
- Avoid clickbait that misleads

Title:"""

DESCRIPTION_SYSTEM_PROMPT = (
    "You are an expert at creating engaging social media descriptions. "
    "Keep descriptions under 150 characters and include relevant hashtags."
)

DESCRIPTION_TEMPLATE = """Write a compelling description for a sports reel about {name}.

Context:
- Celebrity: {name}
- Sport: {sport}
- Script summary: {summary}
- Duration: {duration} seconds

Requirements:
- Maximum 150 characters
- Include relevant hashtags
- Mention key achievement or interesting fact

Description:"""

HASHTAG_SYSTEM_PROMPT = (
    "You are an expert at creating relevant hashtags for sports content. "
    "Generate 8-12 hashtags as a comma-separated list."
)

HASHTAG_TEMPLATE = """Generate relevant hashtags for a sports reel about {name}.

Context:
- Celebrity: {name}
- Sport: {sport}
- Content focus: {focus}

Requirements:
- 8-12 hashtags
- Mix of popular and niche tags
- Format as comma-separated list

Hashtags:"""


def words_per_minute() -> int:
    return int(config.get_pipeline_value("script.words_per_minute", 150))


def calculate_target_words(duration_seconds: int, wpm: int | None = None) -> int:
    """Number of words that fill ``duration_seconds`` at the narration pace."""
    return math.ceil(duration_seconds / 60 * (wpm or words_per_minute()))


def estimate_duration(word_count: int, wpm: int | None = None) -> int:
    return math.ceil(word_count / (wpm or words_per_minute()) * 60)


def render(template: str, context: dict[str, object]) -> str:
    """Substitute ``{key}`` placeholders; unknown braces in the values are left untouched."""
    rendered = template
    for key, value in context.items():
        rendered = rendered.replace("{" + key + "}", str(value))
    return rendered


def subject_context(subject: SubjectProfile, duration: int) -> dict[str, object]:
    return {
        "name": subject.name,
        "sport": subject.sport,
        "position": subject.position or "Player",
        "team": subject.team or "Various teams",
        "nationality": subject.nationality or "Unknown",
        "biography": subject.biography,
        "achievements": ", ".join(subject.achievements),
        "duration": duration,
        "wpm": words_per_minute(),
        "target_words": calculate_target_words(duration),
        "tone": DEFAULT_TONE,
        "style": DEFAULT_STYLE,
        "audience": TARGET_AUDIENCE,
        "avoid": ", ".join(AVOID_TOPICS),
    }


def build_script_prompt(subject: SubjectProfile, duration: int, style_hints: str | None = None) -> str:
    prompt = render(SCRIPT_TEMPLATE, subject_context(subject, duration))
    if style_hints:
        prompt = f"{style_hints}\n\n{prompt}"
    return prompt


def extract_focus_point(script: str) -> str:
    """First two substantial sentences of a script, used to steer title and hashtags."""
    sentences = [s.strip() for s in re.split(r"[.!?]+", script) if len(s.strip()) > 20]
    return ". ".join(sentences[:2]) or "career achievements"


def fallback_title(subject: SubjectProfile) -> str:
    return f"{subject.name}: {subject.sport} Legend"


def fallback_description(subject: SubjectProfile) -> str:
    return f"Discover the incredible story of {subject.name}! #{subject.sport} #Sports #Legend"


def fallback_hashtags(subject: SubjectProfile) -> list[str]:
    name_tag = re.sub(r"\s+", "", subject.name)
    return [f"#{subject.sport}", "#Sports", "#Legend", f"#{name_tag}"]


def parse_hashtags(raw: str) -> list[str]:
    tags = [tag.strip().lstrip("#") for tag in raw.split(",")]
    return [f"#{tag}" for tag in tags if tag]

"""Prompt templates for short-form video scripts."""
from typing import List, Optional

SYSTEM_PROMPT = (
    "You write short-form video scripts for YouTube Shorts, TikTok and Reels. "
    "Reply with the script only, no headings, notes or markdown."
)

SCRIPT_PROMPT = """Create an engaging YouTube Shorts script about {topic}.{steering}
The script must follow this EXACT format with line breaks (do not include any other text or formatting):

"[An engaging question about the theme that hooks viewers]"

"[First Option]: [One word] - [2-3 word compelling explanation]"

"[Second Option]: [One word] - [2-3 word compelling explanation]"

"[Third Option]: [One word] - [2-3 word compelling explanation]"

"[Fourth Option]: [One word] - [2-3 word compelling explanation]"

"[One engaging line that includes both a call-to-action to comment and a FOMO-inducing statement]"

Example format:
"Calling all Yamaha enthusiasts! Which beast do you love the most?"

"YZF-R1: Unleash the racing spirit."

"MT-10: Master the urban jungle."

"XSR900: The modern-classic outlaw."

"Niken: Conquer the curves with three wheels."

"Share your choice and let's ride together!"

Follow this format exactly with double quotes, keeping options concise with one primary word followed by a short explanation. Make the CTA engaging and include both a comment prompt and FOMO element. Use conversational, TikTok-style language."""


def build_steering(category: Optional[str] = None, tags: Optional[List[str]] = None) -> str:
    """Extra instructions for an optional category and tags."""
    lines = []
    if category:
        lines.append(f"Category: {category.strip()}.")
    cleaned_tags = [tag.strip() for tag in (tags or []) if tag and tag.strip()]
    if cleaned_tags:
        lines.append(f"Work these themes in where natural: {', '.join(cleaned_tags)}.")
    if not lines:
        return ""
    return "\n" + "\n".join(lines)

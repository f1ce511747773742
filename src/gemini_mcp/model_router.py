"""Image model routing: 2-tier selection between a fast and an advanced model.

Tier FAST (default image model) - Quick, cheap
  - Illustrations, photos, concept art
  - Anything without text to render

Tier ADVANCED (pro image model) - Slower, higher fidelity
  - Infographics, diagrams, charts
  - Logos, posters, typography, anything with legible text
  - Prompts asking for presentation-grade quality

Router Logic:
1. Explicit caller intent (``usePro``) always wins
2. Otherwise, substring match of the lower-cased prompt against
   ADVANCED_KEYWORDS picks ADVANCED
3. Everything else goes to FAST

Matching is plain substring containment, so "text" also matches
"context" or "textured". That trades precision for recall: a wasted
pro call is cheaper than garbled lettering on a poster.
"""

import logging
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class ImageTier(Enum):
    """Image model tier selection."""
    FAST = "fast"
    ADVANCED = "advanced"


ADVANCED_KEYWORDS = (
    # Text rendering
    "text", "typography", "lettering", "font", "caption", "title",
    "label", "headline",
    # Structured graphics
    "infographic", "diagram", "chart", "bar graph", "line graph",
    "flowchart", "timeline", "schematic",
    # Branding and print
    "logo", "poster", "banner", "flyer", "brochure", "menu",
    # Presentation
    "slide deck", "presentation", "ui mockup", "wireframe",
    # Quality cues
    "high quality", "high-quality", "high resolution",
)


@dataclass
class RoutingDecision:
    """Image model routing decision with reasoning."""
    tier: ImageTier
    model: str
    reason: str
    matched_keyword: str | None = None


def find_advanced_keyword(prompt: str) -> str | None:
    """Return the first advanced keyword contained in the prompt, if any."""
    prompt_lower = prompt.lower()
    for keyword in ADVANCED_KEYWORDS:
        if keyword in prompt_lower:
            return keyword
    return None


def select_tier(prompt: str, use_pro: bool | None = None) -> ImageTier:
    """Classify a prompt into FAST or ADVANCED."""
    if use_pro is not None:
        return ImageTier.ADVANCED if use_pro else ImageTier.FAST
    if find_advanced_keyword(prompt) is not None:
        return ImageTier.ADVANCED
    return ImageTier.FAST


def route_image_request(
    prompt: str,
    use_pro: bool | None,
    fast_model: str,
    advanced_model: str,
) -> RoutingDecision:
    """Pick the image model for a prompt.

    Args:
        prompt: Image description from the caller
        use_pro: Explicit tier override, or None to classify the prompt
        fast_model: Model id for the FAST tier
        advanced_model: Model id for the ADVANCED tier

    Returns:
        RoutingDecision with tier, model id and reasoning
    """
    if use_pro is not None:
        tier = select_tier(prompt, use_pro)
        decision = RoutingDecision(
            tier=tier,
            model=advanced_model if tier is ImageTier.ADVANCED else fast_model,
            reason=f"Caller requested usePro={use_pro}",
        )
    else:
        keyword = find_advanced_keyword(prompt)
        if keyword is not None:
            decision = RoutingDecision(
                tier=ImageTier.ADVANCED,
                model=advanced_model,
                reason=f"Prompt mentions '{keyword}'",
                matched_keyword=keyword,
            )
        else:
            decision = RoutingDecision(
                tier=ImageTier.FAST,
                model=fast_model,
                reason="No advanced keywords in prompt",
            )

    logger.debug(f"Image routing: {decision.tier.value} -> {decision.model} ({decision.reason})")
    return decision

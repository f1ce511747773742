"""Tests for gemini_mcp.model_router — fast/advanced image tier routing."""

import pytest

from gemini_mcp.model_router import (
    ADVANCED_KEYWORDS,
    ImageTier,
    find_advanced_keyword,
    route_image_request,
    select_tier,
)

FAST = "fast-model"
PRO = "pro-model"


class TestSelectTier:
    """Test keyword classification and override."""

    def test_infographic_is_advanced(self):
        assert select_tier("Create an infographic of X") == ImageTier.ADVANCED

    def test_plain_prompt_is_fast(self):
        assert select_tier("a cute cat") == ImageTier.FAST

    @pytest.mark.parametrize("prompt", ["a cute cat", "Create an infographic of X", "", "LOGO"])
    def test_override_true_always_advanced(self, prompt):
        assert select_tier(prompt, True) == ImageTier.ADVANCED

    @pytest.mark.parametrize("prompt", ["a cute cat", "Create an infographic of X", "poster with text"])
    def test_override_false_always_fast(self, prompt):
        assert select_tier(prompt, False) == ImageTier.FAST

    @pytest.mark.parametrize("keyword", ADVANCED_KEYWORDS)
    def test_every_keyword_routes_advanced(self, keyword):
        assert select_tier(f"please make a {keyword} for me") == ImageTier.ADVANCED

    def test_case_insensitive(self):
        assert select_tier("A BAR CHART of sales") == ImageTier.ADVANCED

    def test_substring_match_inside_words(self):
        # Precision/recall tradeoff: "text" inside "textured" still routes to pro
        assert find_advanced_keyword("a textured stone wall") == "text"
        assert select_tier("a textured stone wall") == ImageTier.ADVANCED

    @pytest.mark.parametrize("prompt", [
        "a cute cat",
        "sunset over the ocean",
        "a dog running on the beach",
        "watercolor painting of a forest",
        "a professional photograph of a designer at work",
        "a detailed map of a fantasy kingdom, 4k",
        "a greeting card with a snowy cover",
        "photorealistic portrait of an old sailor",
    ])
    def test_fast_prompts(self, prompt):
        assert find_advanced_keyword(prompt) is None
        assert select_tier(prompt) == ImageTier.FAST


class TestRouteImageRequest:
    """Test model selection and reasoning."""

    def test_keyword_route(self):
        decision = route_image_request("a company logo", None, FAST, PRO)
        assert decision.tier == ImageTier.ADVANCED
        assert decision.model == PRO
        assert decision.matched_keyword == "logo"

    def test_default_route(self):
        decision = route_image_request("a cute cat", None, FAST, PRO)
        assert decision.tier == ImageTier.FAST
        assert decision.model == FAST
        assert decision.matched_keyword is None

    def test_override_wins_over_keyword(self):
        decision = route_image_request("a company logo", False, FAST, PRO)
        assert decision.tier == ImageTier.FAST
        assert decision.model == FAST
        assert "usePro=False" in decision.reason

    def test_override_true(self):
        decision = route_image_request("a cute cat", True, FAST, PRO)
        assert decision.model == PRO

"""Unit tests for reply suggestions."""

import pytest

from src.services.smart_replies import (
    DEFAULT_SMART_REPLIES,
    QUICK_REPLIES,
    generate_smart_replies,
    suggest_replies,
)


class TestGenerateSmartReplies:
    """Tests for generate_smart_replies."""

    @pytest.mark.parametrize(
        ("text", "expected_first"),
        [
            ("Chhal akhir thaman?", "Akhir thaman howa hada."),
            ("Le PRIX est négociable ?", "Akhir thaman howa hada."),
            ("Wach mazal kayn?", "Oui, mizal dispo."),
            ("Fin nta?", "Casa, Maarif."),
            ("Salam", "Wa alaykoum salam."),
        ],
    )
    def test_keyword_rules(self, text: str, expected_first: str) -> None:
        """Test that keywords pick their reply set, case-insensitively."""
        assert generate_smart_replies(text)[0] == expected_first

    def test_first_matching_rule_wins(self) -> None:
        """Test that price questions take precedence over greetings."""
        assert generate_smart_replies("Salam, chhal?")[0] == "Akhir thaman howa hada."

    def test_default_replies(self) -> None:
        """Test the fallback when no keyword matches."""
        assert generate_smart_replies("Merci") == DEFAULT_SMART_REPLIES

    def test_returns_copy(self) -> None:
        """Test that callers cannot mutate the rule table."""
        replies = generate_smart_replies("Merci")
        replies.append("extra")

        assert "extra" not in DEFAULT_SMART_REPLIES


class TestSuggestReplies:
    """Tests for suggest_replies."""

    def test_buyer_always_gets_quick_replies(self) -> None:
        """Test that buyers get the quick replies whatever the last message."""
        result = suggest_replies("buyer-1", "seller-1", "Chhal?", "seller-1")

        assert result == QUICK_REPLIES

    def test_seller_answering_buyer(self) -> None:
        """Test that sellers get smart replies for the buyer's message."""
        result = suggest_replies("seller-1", "seller-1", "Wach dispo?", "buyer-1")

        assert result[0] == "Oui, mizal dispo."

    def test_seller_after_own_message(self) -> None:
        """Test that sellers get nothing when they spoke last."""
        assert suggest_replies("seller-1", "seller-1", "Oui dispo", "seller-1") == []

    def test_seller_empty_conversation(self) -> None:
        """Test that sellers get nothing before any message."""
        assert suggest_replies("seller-1", "seller-1", None, None) == []

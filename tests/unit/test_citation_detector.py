"""Tests for citation detection."""

from engine.citation.detector import (
    CitationDetector,
    Sentiment,
    classify_sentiment,
    detect_citation,
    sentence_at,
)
from engine.citation.matcher import CitationType, KnownEntity

RANKED_ANSWER = """Here are the best CRM tools for small teams:

1. Salesforce - the market leader with a huge ecosystem.
2. HubSpot - an excellent, intuitive choice with a generous free tier.
3. Pipedrive - simple pipeline management.
"""


class TestSentiment:
    """Tests for lexicon sentiment."""

    def test_positive(self) -> None:
        """Positive indicators outvote negative ones."""
        assert classify_sentiment("HubSpot is an excellent and reliable CRM") == Sentiment.POSITIVE

    def test_negative(self) -> None:
        """Negative indicators outvote positive ones."""
        assert classify_sentiment("Users report issues and complaints") == Sentiment.NEGATIVE

    def test_tie_is_neutral(self) -> None:
        """Equal counts are neutral."""
        assert classify_sentiment("A great tool but expensive") == Sentiment.NEUTRAL

    def test_whole_words_only(self) -> None:
        """Indicators inside longer words do not count."""
        assert classify_sentiment("The stopwatch is on the desktop") == Sentiment.NEUTRAL

    def test_sentence_at_offset(self) -> None:
        """The sentence around an offset is returned."""
        text = "Salesforce is big. HubSpot is excellent. Pipedrive is simple."
        assert sentence_at(text, text.index("HubSpot")) == "HubSpot is excellent."


class TestCitationDetector:
    """Tests for CitationDetector.detect."""

    def test_cited_with_position_and_sentiment(self) -> None:
        """A ranked answer yields list position and sentence sentiment."""
        competitors = [KnownEntity("Salesforce"), KnownEntity("Pipedrive")]
        analysis = CitationDetector().detect(RANKED_ANSWER, "HubSpot", "hubspot.com", competitors)

        assert analysis.cited is True
        assert analysis.citation_type == CitationType.EXACT_NAME
        assert analysis.confidence == 0.9
        assert analysis.position == 2
        assert analysis.sentiment == Sentiment.POSITIVE
        assert analysis.competitors_mentioned == ["Salesforce", "Pipedrive"]

    def test_not_in_list_has_no_position(self) -> None:
        """Mentions outside numbered lists have no position."""
        analysis = detect_citation("I like HubSpot for marketing.", "HubSpot")

        assert analysis.cited is True
        assert analysis.position is None

    def test_position_resets_on_new_list(self) -> None:
        """A second list starting at 1 restarts the rank."""
        text = "1. Salesforce\n2. Zoho\n\nFor startups:\n1. HubSpot\n2. Pipedrive\n"
        analysis = detect_citation(text, "HubSpot")

        assert analysis.position == 1

    def test_not_cited_still_reports_competitors(self) -> None:
        """Competitors are reported even when the brand is absent."""
        analysis = detect_citation(
            "Salesforce is the usual pick.", "HubSpot", "hubspot.com", [KnownEntity("Salesforce")]
        )

        assert analysis.cited is False
        assert analysis.confidence == 0.0
        assert analysis.sentiment is None
        assert analysis.competitors_mentioned == ["Salesforce"]

    def test_brand_is_not_its_own_competitor(self) -> None:
        """A competitor entry with the brand's name is ignored."""
        analysis = detect_citation("HubSpot wins.", "HubSpot", None, [KnownEntity("HubSpot")])

        assert analysis.competitors_mentioned == []

    def test_empty_text(self) -> None:
        """Empty text is not cited."""
        analysis = detect_citation("", "HubSpot", "hubspot.com")

        assert analysis.cited is False
        assert analysis.citation_type is None

    def test_to_dict(self) -> None:
        """Enums are serialized by value."""
        data = detect_citation("Visit https://hubspot.com now", "HubSpot", "hubspot.com").to_dict()

        assert data["cited"] is True
        assert data["citation_type"] == "url"
        assert data["sentiment"] == "neutral"

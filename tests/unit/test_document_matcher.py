"""Unit tests for the documentation matcher."""

from domain.context.document_matcher import DocumentMatcher, score_entry
from domain.context.knowledge_catalog import GETTING_STARTED, PERCIFY_DOCS
from domain.models.agent_state import DocumentEntry


def entry(key, title="Title", content="content", path="/p"):
    return DocumentEntry(key=key, title=title, content=content, path=path)


class TestScoreEntry:
    """Tests for the keyword scoring rules"""

    def test_key_title_and_content_matches(self):
        """Should add 10 for key, 5 for title and 3 for content substring matches."""
        doc = entry("tone", title="Tone Customization", content="pick a tone")

        # 10 + 5 + 3, then "tone" as a word: +2 in key, +1 in content
        assert score_entry("tone", doc) == 21

    def test_word_matches_only(self):
        """Should score individual words longer than two characters."""
        doc = entry("memory_system", content="memory is stored")

        assert score_entry("how is memory stored", doc) == 2 + 1 + 1

    def test_short_words_ignored(self):
        """Should ignore words of two characters or fewer."""
        doc = entry("abc", title="zz", content="ab cd")

        assert score_entry("x ab", doc) == 0

    def test_no_match(self):
        assert score_entry("unrelated", entry("tone", content="pick a tone")) == 0


class TestDocumentMatcher:
    """Tests for DocumentMatcher search"""

    def test_tone_query_returns_tone_entry(self, matcher):
        """Should resolve 'tone' to the tone customization page."""
        result = matcher.search("tone")

        assert "Tone Customization" in result.snippet
        assert result.source_url == "https://docs.percify.io/docs/customization/tone"

    def test_memory_question(self, matcher):
        result = matcher.search("How does the memory system work?")

        assert result.source_url.endswith("/docs/memory-system")

    def test_unknown_query_falls_back_to_getting_started(self, matcher):
        """Should return the getting started entry when nothing scores at least 2."""
        result = matcher.search("qqqq zzzz")

        assert "Getting Started" in result.snippet
        assert result.source_url == "https://docs.percify.io/docs/getting-started"

    def test_snippet_embeds_title_and_content(self, matcher):
        result = matcher.search("tone")
        tone = next(doc for doc in PERCIFY_DOCS if doc.key == "tone")

        assert result.snippet == f"📚 **{tone.title}** (docs.percify.io)\n\n{tone.content}"

    def test_search_is_deterministic(self):
        """Should return identical results across fresh matchers."""
        first = DocumentMatcher().search("scheduling reminders")
        second = DocumentMatcher().search("scheduling reminders")

        assert first == second

    def test_results_are_memoized(self, matcher):
        assert matcher.search("avatar") is matcher.search("avatar")

    def test_memo_is_bounded(self):
        """Should forget the least recently used query once the cache is full."""
        matcher = DocumentMatcher(cache_size=2)
        first = matcher.search("avatar")
        matcher.search("tone")
        matcher.search("memory")

        assert matcher._search.cache_info().currsize == 2
        assert matcher.search("avatar") is not first
        assert matcher.search("avatar") == first

    def test_ties_keep_earliest_entry(self):
        """Should keep the first entry when a later one only ties."""
        catalog = [
            entry("alpha", content="shared words here", path="/first"),
            entry("beta", content="shared words here", path="/second"),
        ]
        matcher = DocumentMatcher("https://docs.example.com", catalog=catalog)

        doc, score = matcher.best_match("shared words")

        assert doc.path == "/first"
        assert score == 3 + 1 + 1

    def test_empty_catalog_falls_back(self):
        matcher = DocumentMatcher(catalog=[])

        doc, score = matcher.best_match("tone")

        assert doc == GETTING_STARTED
        assert score == 0

    def test_empty_query_matches_first_entry(self, matcher):
        """Should match every field for an empty query, so the first entry wins."""
        doc, _ = matcher.best_match("")

        assert doc == PERCIFY_DOCS[0]

    def test_base_url_trailing_slash(self):
        result = DocumentMatcher("https://docs.percify.io/").search("tone")

        assert result.source_url == "https://docs.percify.io/docs/customization/tone"

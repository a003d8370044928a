"""Tests for the additive keyword scorer and the query analyzer."""

from conftest import make_chunk
from tala.src.core.keyword_scorer import KeywordScorer
from tala.src.core.query_analyzer import analyze_query, detect_section, is_calendar_query


class TestKeywordScorer:
    scorer = KeywordScorer()

    def test_occurrences_and_keywords(self):
        chunk = make_chunk("a", "Enrollment starts. Enrollment ends.", keywords=("enrollment",))
        # 2 occurrences x 2 + one keyword x 5
        assert self.scorer.score("enrollment", chunk) == 9.0

    def test_metadata_match(self):
        chunk = make_chunk("a", "Dean of the faculty", metadata={"name": "Maria Santos"})
        assert self.scorer.score("maria", chunk) == 3.0

    def test_calendar_boosts(self):
        chunk = make_chunk("e", "Foundation day", type="calendar_event")
        # calendar intent (+50) and date term "upcoming" (+20)
        assert self.scorer.score("upcoming events", chunk) == 70.0

    def test_calendar_boost_needs_calendar_chunk(self):
        chunk = make_chunk("a", "Foundation day")
        assert self.scorer.score("upcoming events", chunk) == 0.0

    def test_short_tokens_ignored(self):
        chunk = make_chunk("a", "an ox is in it")
        assert self.scorer.score("an ox", chunk) == 0.0

    def test_search_excludes_zero_and_keeps_corpus_order_on_ties(self):
        corpus = [
            make_chunk("a", "history of campus"),
            make_chunk("b", "nothing relevant"),
            make_chunk("c", "history again"),
            make_chunk("d", "history history"),
        ]
        ranked = self.scorer.search("history", corpus, max_results=10)
        assert [r.chunk.id for r in ranked] == ["d", "a", "c"]
        assert all(r.source == "keyword" for r in ranked)

    def test_search_truncates(self):
        corpus = [make_chunk(str(i), "history") for i in range(5)]
        assert len(self.scorer.search("history", corpus, max_results=2)) == 2


class TestQueryAnalyzer:
    def test_listing_query(self):
        profile = analyze_query("what are the faculties")
        assert profile.is_listing
        assert profile.is_comprehensive
        assert profile.wants_expansion
        assert profile.named_section == "faculties"

    def test_calendar_intent(self):
        assert is_calendar_query("When is the enrollment period?")
        assert is_calendar_query("what date is the foundation day")
        assert not is_calendar_query("who is the president")

    def test_basic_identity(self):
        assert analyze_query("What is DOrSU").is_basic
        assert not analyze_query("what is the mission of dorsu").is_basic

    def test_exact_section(self):
        assert analyze_query("tell me about the vision").exact_section == "vision_mission"
        assert analyze_query("history of the university").exact_section is None

    def test_semester(self):
        assert analyze_query("1st semester schedule").semester == 1
        assert analyze_query("second sem exams").semester == 2
        assert analyze_query("events during off semester").semester == "Off"

    def test_month_and_year(self):
        profile = analyze_query("events in march 2026")
        assert profile.requested_month == 3
        assert profile.requested_year == 2026

    def test_longest_section_phrase_wins(self):
        assert detect_section("who are the vice presidents") == "leadership"
        assert detect_section("history of the university") == "history"

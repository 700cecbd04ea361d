import pytest

from skillmine.scripts.errors import InvalidArgumentError, LLMError
from skillmine.scripts.ranking import TalentRankingEngine, normalize_profile, score_user
from skillmine.scripts.schemas import RequiredSkill, SimilarityEdge


def test_exact_python_match_scores_100_and_non_matcher_is_excluded(store, tenant_id, give, fake_similarity):
    give(store, tenant_id, "ana", "Python", 5)
    give(store, tenant_id, "bruno", "Excel", 3)
    sim = fake_similarity({"Python": [("Python", 1.0)]})
    engine = TalentRankingEngine(store, similarity=sim)

    ranked = engine.rank(tenant_id, [{"name": "Python", "proficiency": 4}], justify=False)

    assert [r.user_name for r in ranked] == ["ana"]
    assert ranked[0].match_score == pytest.approx(100.0)
    assert ranked[0].email == "ana@acme.com"
    m = ranked[0].matched_skills[0]
    assert (m.skill_name, m.required_proficiency, m.user_proficiency, m.similarity) == ("Python", 4, 5, 1.0)


def test_one_owned_skill_satisfies_one_requirement(store, tenant_id, give, fake_similarity):
    give(store, tenant_id, "carla", "Spring Boot", 4)
    sim = fake_similarity({
        "Java": [("Spring Boot", 0.5)],
        "Spring": [("Spring Boot", 0.9)],
    })
    engine = TalentRankingEngine(store, similarity=sim)

    ranked = engine.rank(tenant_id, [{"name": "Java", "proficiency": 3}, {"name": "Spring", "proficiency": 3}], justify=False)

    assert len(ranked) == 1
    assert [m.skill_name for m in ranked[0].matched_skills] == ["Spring"]
    assert ranked[0].matched_skills[0].similarity == 0.9
    assert ranked[0].match_score == pytest.approx(100 * (0.9 * 4 * 3) / (3 * 5 + 3 * 5))


def test_best_candidate_maximizes_similarity_times_proficiency(store, tenant_id, give, fake_similarity):
    give(store, tenant_id, "dani", "PostgreSQL", 2)
    give(store, tenant_id, "dani", "MySQL", 5)
    sim = fake_similarity({"SQL": [("PostgreSQL", 0.9), ("MySQL", 0.7)]})
    ranked = TalentRankingEngine(store, similarity=sim).rank(tenant_id, [{"name": "SQL", "proficiency": 5}], justify=False)
    m = ranked[0].matched_skills[0]
    assert (m.user_proficiency, m.similarity) == (5, 0.7)


def test_matched_skill_uses_required_name(store, tenant_id, give, fake_similarity):
    give(store, tenant_id, "eva", "JS", 3)
    sim = fake_similarity({"JavaScript": [("JS", 0.95)]})
    ranked = TalentRankingEngine(store, similarity=sim).rank(tenant_id, [{"name": "JavaScript", "proficiency": 3}], justify=False)
    assert ranked[0].matched_skills[0].skill_name == "JavaScript"


def test_no_reuse_on_identical_edges():
    profile = [RequiredSkill(name="Python", proficiency=3), RequiredSkill(name="Python 3", proficiency=3)]
    edge = dict(existing_skill_id="s1", existing_skill_name="Python", similarity=1.0)
    edges = {
        "python": [SimilarityEdge(required_name="Python", **edge)],
        "python 3": [SimilarityEdge(required_name="Python 3", **edge)],
    }
    score, matches = score_user(profile, edges, {"s1": 4})
    # tie on similarity x proficiency keeps profile order
    assert [m.skill_name for m in matches] == ["Python"]
    assert score == pytest.approx(100 * (1.0 * 4 * 3) / 30)


def test_scores_stay_within_bounds(store, tenant_id, give, fake_similarity):
    names = ["Go", "Rust", "Kafka"]
    for i in range(10):
        for j, name in enumerate(names):
            if (i + j) % 3:
                give(store, tenant_id, f"u{i}", name, 1 + (i + j) % 5)
    sim = fake_similarity({"Go": [("Go", 1.0)], "Rust": [("Rust", 0.75)], "Kafka": [("Kafka", 0.5)]})
    profile = [{"name": n, "proficiency": 1 + k} for k, n in enumerate(names)]
    ranked = TalentRankingEngine(store, similarity=sim).rank(tenant_id, profile, justify=False)
    assert ranked
    assert all(0 <= r.match_score <= 100 for r in ranked)
    assert [r.match_score for r in ranked] == sorted((r.match_score for r in ranked), reverse=True)


def test_unmatched_requirements_count_in_denominator(store, tenant_id, give, fake_similarity):
    give(store, tenant_id, "ana", "Go", 5)
    sim = fake_similarity({"Go": [("Go", 1.0)]})
    ranked = TalentRankingEngine(store, similarity=sim).rank(
        tenant_id, [{"name": "Go", "proficiency": 5}, {"name": "Haskell", "proficiency": 5}], justify=False
    )
    assert ranked[0].match_score == pytest.approx(50.0)


def test_ranking_is_truncated_to_top_20(store, tenant_id, give, fake_similarity):
    for i in range(25):
        give(store, tenant_id, f"u{i:02d}", "Python", 1 + i % 5)
    sim = fake_similarity({"Python": [("Python", 1.0)]})
    ranked = TalentRankingEngine(store, similarity=sim).rank(tenant_id, [{"name": "Python", "proficiency": 3}], justify=False)
    assert len(ranked) == 20
    assert ranked[0].match_score == pytest.approx(100.0)
    assert len(sim.calls) == 1


def test_profile_is_deduplicated_case_insensitively():
    profile = normalize_profile([{"name": "python", "proficiency": 4}, {"name": "Python", "proficiency": 2}, {"name": "SQL"}])
    assert [(r.name, r.proficiency) for r in profile] == [("python", 4), ("SQL", 3)]


@pytest.mark.parametrize("bad", [[], [{"name": "  ", "proficiency": 3}], [{"name": "Go", "proficiency": 6}]])
def test_invalid_profile_is_rejected(store, tenant_id, fake_similarity, bad):
    sim = fake_similarity({})
    with pytest.raises(InvalidArgumentError):
        TalentRankingEngine(store, similarity=sim).rank(tenant_id, bad)
    assert sim.calls == []


def test_empty_catalog_returns_empty_ranking(store, tenant_id, fake_similarity):
    sim = fake_similarity({})
    assert TalentRankingEngine(store, similarity=sim).rank(tenant_id, [{"name": "Go", "proficiency": 3}]) == []
    assert sim.calls == []


class _Advisor:
    def __init__(self, fail=False):
        self.fail = fail
        self.seen = []

    def justify(self, required_names, users):
        self.seen = [u.user_name for u in users]
        if self.fail:
            raise LLMError("gateway down")
        return {u.user_name: f"{u.full_name} knows {required_names[0]}" for u in users}


def test_only_top_three_get_justifications(store, tenant_id, give, fake_similarity):
    for i, prof in enumerate([5, 4, 3, 2, 1]):
        give(store, tenant_id, f"u{i}", "Python", prof)
    advisor = _Advisor()
    sim = fake_similarity({"Python": [("Python", 1.0)]})
    ranked = TalentRankingEngine(store, similarity=sim, advisor=advisor).rank(tenant_id, [{"name": "Python", "proficiency": 3}])
    assert advisor.seen == ["u0", "u1", "u2"]
    assert all(r.justification for r in ranked[:3])
    assert all(r.justification is None for r in ranked[3:])


def test_justification_failure_is_not_fatal(store, tenant_id, give, fake_similarity):
    give(store, tenant_id, "ana", "Python", 5)
    sim = fake_similarity({"Python": [("Python", 1.0)]})
    ranked = TalentRankingEngine(store, similarity=sim, advisor=_Advisor(fail=True)).rank(tenant_id, [{"name": "Python", "proficiency": 5}])
    assert len(ranked) == 1
    assert ranked[0].justification is None


def test_similarity_edges_match_catalog_case_insensitively(store, tenant_id, give, fake_similarity):
    give(store, tenant_id, "ana", "Python", 5)
    sim = fake_similarity({"Python": [("PYTHON", 1.0)]})
    ranked = TalentRankingEngine(store, similarity=sim).rank(tenant_id, [{"name": "Python", "proficiency": 5}], justify=False)
    assert len(ranked) == 1


class _LLM:
    def __init__(self, response):
        self.response = response

    def complete_json(self, system, user, schema=None, name="result", temperature=0.3):
        return self.response


@pytest.mark.parametrize("payload", [{"justifications": 7}, {"justifications": "Ana is great"}, {}])
def test_malformed_justification_reply_is_not_fatal(store, tenant_id, give, fake_similarity, payload):
    from skillmine.scripts.skill_advisor import SkillAdvisor

    give(store, tenant_id, "ana", "Python", 5)
    sim = fake_similarity({"Python": [("Python", 1.0)]})
    engine = TalentRankingEngine(store, similarity=sim, advisor=SkillAdvisor(llm=_LLM(payload)))
    ranked = engine.rank(tenant_id, [{"name": "Python", "proficiency": 5}])
    assert [r.user_name for r in ranked] == ["ana"]
    assert ranked[0].justification is None


def test_advisor_type_error_is_not_fatal(store, tenant_id, give, fake_similarity):
    class Broken:
        def justify(self, required_names, users):
            raise TypeError("'int' object is not iterable")

    give(store, tenant_id, "ana", "Python", 5)
    sim = fake_similarity({"Python": [("Python", 1.0)]})
    ranked = TalentRankingEngine(store, similarity=sim, advisor=Broken()).rank(tenant_id, [{"name": "Python", "proficiency": 5}])
    assert ranked[0].justification is None

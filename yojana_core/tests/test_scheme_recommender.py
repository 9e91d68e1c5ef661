import json
import tempfile
from pathlib import Path

import pytest

from yojana_core.agents.scheme_recommender import (
    SchemeRecommender,
    build_recommendation_prompt,
    parse_recommendations,
)
from yojana_core.config.feature_flags import FeatureFlags
from yojana_core.domain.exceptions import ApiError, BusinessError, InvalidRequest, ResponderUnavailable
from yojana_core.domain.schemes import Scheme, load_scheme_catalog


PROFILE = {
    "name": "Ramesh",
    "age": 45,
    "gender": "Male",
    "state": "Maharashtra",
    "category": "Farmer",
    "annualIncome": 120000,
    "hasAadhaar": True,
    "hasPan": False,
    "hasRationCard": True,
    "hasIncomeCertificate": False,
}

CATALOG = [
    Scheme(id="pm-kisan", name="PM Kisan", category="Farmer", benefits="6000 per year", required_docs=["Aadhaar", "Land records"]),
    Scheme(id="pm-jay", name="PM-JAY", category="Senior Citizen", benefits="Health cover", required_docs=["Ration Card"]),
]


class FakeBedrock:
    def __init__(self, raw):
        self.raw = raw
        self.calls = []

    def invoke(self, messages, system=None, model_cfg=None):
        self.calls.append({"messages": messages, "model_cfg": model_cfg})
        return self.raw


class FlagSettings:
    use_bedrock_as_primary = True
    use_gemini_as_fallback = True


def _ranked(n):
    return json.dumps([
        {"schemeId": f"s{i}", "schemeName": f"Scheme {i}", "score": 90 - i, "explanation": "fits", "reasoning": "none"}
        for i in range(n)
    ])


def test_prompt_contains_profile_and_catalog():
    prompt = build_recommendation_prompt(PROFILE, CATALOG)
    assert "- Category: Farmer" in prompt
    assert "- Annual Income: ₹120000" in prompt
    assert "- Documents Available: Aadhaar, Ration Card" in prompt
    assert '- PM Kisan (ID: pm-kisan): For category "Farmer". Benefits: 6000 per year. Required docs: Aadhaar, Land records' in prompt
    assert "Return ONLY valid JSON" in prompt


def test_parse_recommendations_handles_fences():
    raw = "```json\n" + _ranked(2) + "\n```"
    items = parse_recommendations(raw)
    assert [i.scheme_id for i in items] == ["s0", "s1"]
    assert items[0].to_dict() == {
        "schemeId": "s0",
        "schemeName": "Scheme 0",
        "score": 90.0,
        "explanation": "fits",
        "reasoning": "none",
    }


def test_parse_recommendations_tolerates_preamble_and_bad_scores():
    raw = 'Here you go: [{"schemeId": "a", "score": "high"}, "junk"] thanks'
    items = parse_recommendations(raw)
    assert len(items) == 1
    assert items[0].score == 0.0


def test_parse_recommendations_malformed():
    with pytest.raises(ApiError) as exc_info:
        parse_recommendations("I cannot help with that")
    assert exc_info.value.code == "MALFORMED_RESPONSE"
    assert exc_info.value.extra["raw_response"] == "I cannot help with that"


def test_recommend_truncates_to_top_n():
    client = FakeBedrock(_ranked(7))
    recommender = SchemeRecommender(client, CATALOG, FeatureFlags(FlagSettings()))
    items = recommender.recommend(PROFILE, top_n=5)
    assert len(items) == 5
    call = client.calls[0]
    assert call["model_cfg"].logical_name == "recommend"
    assert call["model_cfg"].max_tokens == 1024
    assert call["messages"][0]["role"] == "user"


def test_recommend_requires_profile():
    recommender = SchemeRecommender(FakeBedrock("[]"), CATALOG, FeatureFlags(FlagSettings()))
    with pytest.raises(InvalidRequest):
        recommender.recommend({})


def test_recommend_respects_primary_flag():
    class Disabled(FlagSettings):
        use_bedrock_as_primary = False

    client = FakeBedrock("[]")
    recommender = SchemeRecommender(client, CATALOG, FeatureFlags(Disabled()))
    with pytest.raises(ResponderUnavailable):
        recommender.recommend(PROFILE)
    assert client.calls == []


def test_default_catalog_loads():
    schemes = load_scheme_catalog()
    ids = [s.id for s in schemes]
    assert "pm-kisan-samman" in ids
    assert all(s.required_docs for s in schemes)


def test_catalog_from_json_list():
    with tempfile.TemporaryDirectory() as d:
        path = Path(d) / "schemes.json"
        path.write_text(json.dumps([{"id": "x", "name": "X", "category": "Student", "benefits": "b", "requiredDocs": ["Aadhaar"]}]), encoding="utf-8")
        schemes = load_scheme_catalog(path)
        assert schemes == [Scheme(id="x", name="X", category="Student", benefits="b", required_docs=["Aadhaar"])]


def test_catalog_missing_file():
    with pytest.raises(BusinessError) as exc_info:
        load_scheme_catalog("/nonexistent/schemes.yaml")
    assert exc_info.value.code == "CATALOG_READ_ERROR"

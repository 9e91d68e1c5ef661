"""福利项目推荐。

把用户画像和项目目录拼成检索增强提示词，让主模型按适配度排序并返回 JSON 数组，
再解析成 SchemeRecommendation 列表，截取前 top_n 条。
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from yojana_core.config.feature_flags import FeatureFlags
from yojana_core.domain.exceptions import ApiError, InvalidRequest, ResponderUnavailable
from yojana_core.domain.schemes import Scheme, SchemeRecommendation
from yojana_core.infrastructure.logging.logger import logger
from yojana_core.providers.bedrock_client import BedrockClient
from yojana_core.providers.registry import BEDROCK_CONFIG


_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

_DOCUMENT_FLAGS = [
    ("hasAadhaar", "Aadhaar"),
    ("hasPan", "PAN"),
    ("hasRationCard", "Ration Card"),
    ("hasIncomeCertificate", "Income Certificate"),
]


def build_recommendation_prompt(user_profile: Dict[str, Any], schemes: Sequence[Scheme]) -> str:
    scheme_context = "\n".join(
        f'- {s.name} (ID: {s.id}): For category "{s.category}". '
        f"Benefits: {s.benefits}. Required docs: {', '.join(s.required_docs)}"
        for s in schemes
    )
    documents = ", ".join(label for key, label in _DOCUMENT_FLAGS if user_profile.get(key))
    return f"""You are an expert advisor on Indian government welfare schemes. Based on the user profile and available schemes, provide personalized recommendations.

USER PROFILE:
- Name: {user_profile.get("name", "")}
- Age: {user_profile.get("age", "")}
- Gender: {user_profile.get("gender", "")}
- State: {user_profile.get("state", "")}
- Category: {user_profile.get("category", "")}
- Annual Income: ₹{user_profile.get("annualIncome", "")}
- Documents Available: {documents}

AVAILABLE SCHEMES:
{scheme_context}

TASK:
Analyze the user profile and rank the top 5 most eligible schemes. For each scheme, provide:
1. Scheme ID
2. Eligibility Score (0-100)
3. Brief explanation of why this scheme is suitable
4. Any eligibility gaps the user needs to address

Format your response as a JSON array with this structure:
[
  {{
    "schemeId": "string",
    "schemeName": "string",
    "score": number,
    "explanation": "string",
    "reasoning": "string"
  }}
]

IMPORTANT: Return ONLY valid JSON, no additional text."""


def parse_recommendations(raw: str) -> List[SchemeRecommendation]:
    """解析模型返回的 JSON 数组，容忍 Markdown 代码块包裹。"""

    text = _FENCE.sub("", raw.strip())
    start, end = text.find("["), text.rfind("]")
    try:
        if start < 0 or end < start:
            raise ValueError("no JSON array found")
        data = json.loads(text[start : end + 1])
    except ValueError as e:
        raise ApiError(
            code="MALFORMED_RESPONSE",
            message=f"Failed to parse recommendation response: {e}",
            raw_response=raw,
        )
    items: List[SchemeRecommendation] = []
    for item in data:
        if not isinstance(item, dict):
            continue
        try:
            score = float(item.get("score", 0))
        except (TypeError, ValueError):
            score = 0.0
        items.append(
            SchemeRecommendation(
                scheme_id=str(item.get("schemeId") or ""),
                scheme_name=item.get("schemeName") or "",
                score=score,
                explanation=item.get("explanation") or "",
                reasoning=item.get("reasoning") or "",
            )
        )
    return items


class SchemeRecommender:
    def __init__(
        self,
        client: BedrockClient,
        catalog: Sequence[Scheme],
        flags: Optional[FeatureFlags] = None,
    ):
        self._client = client
        self._catalog = list(catalog)
        self._flags = flags or FeatureFlags()

    @property
    def model_name(self) -> str:
        return BEDROCK_CONFIG.models["recommend"].display_name

    def recommend(self, user_profile: Optional[Dict[str, Any]], top_n: int = 5) -> List[SchemeRecommendation]:
        if not user_profile:
            raise InvalidRequest(code="MISSING_PROFILE", message="Missing userProfile in request body")
        if not self._flags.is_primary_enabled():
            raise ResponderUnavailable(code="RESPONDER_DISABLED", message="Bedrock is disabled via feature flag")
        if not self._catalog:
            logger.warning("Scheme catalog is empty")
        prompt = build_recommendation_prompt(user_profile, self._catalog)
        raw = self._client.invoke(
            [{"role": "user", "content": prompt}],
            model_cfg=BEDROCK_CONFIG.models["recommend"],
        )
        items = parse_recommendations(raw)
        logger.log(
            logging.INFO,
            "Generated scheme recommendations",
            extra={"extra": {"count": len(items), "top_n": top_n}},
        )
        return items[: max(top_n, 0)]

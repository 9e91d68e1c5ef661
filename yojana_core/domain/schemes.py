"""福利项目目录模型。

Scheme 是推荐器做检索增强时使用的只读目录条目；
SchemeRecommendation 是模型排序后的单条推荐结果。
目录默认随包分发（data/schemes.yaml），也可以通过配置 schemes_file 覆盖。
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .exceptions import BusinessError


DEFAULT_CATALOG = Path(__file__).resolve().parents[1] / "data" / "schemes.yaml"


@dataclass
class Scheme:
    id: str
    name: str
    category: str
    benefits: str
    required_docs: List[str] = field(default_factory=list)
    description: str = ""
    url: str = ""


@dataclass
class SchemeRecommendation:
    scheme_id: str
    scheme_name: str
    score: float
    explanation: str
    reasoning: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schemeId": self.scheme_id,
            "schemeName": self.scheme_name,
            "score": self.score,
            "explanation": self.explanation,
            "reasoning": self.reasoning,
        }


def load_scheme_catalog(path: Optional[str | Path] = None) -> List[Scheme]:
    """从 YAML / JSON 文件加载福利项目目录。

    文件内容可以是列表，也可以是带 "schemes" 键的映射。
    """

    p = Path(path) if path else DEFAULT_CATALOG
    try:
        raw_text = p.read_text(encoding="utf-8")
        if p.suffix.lower() == ".json":
            data = json.loads(raw_text)
        else:
            data = yaml.safe_load(raw_text)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise BusinessError(code="CATALOG_READ_ERROR", message=str(e), http_status=500)
    if isinstance(data, dict):
        data = data.get("schemes") or []
    if not isinstance(data, list):
        raise BusinessError(code="CATALOG_READ_ERROR", message=f"{p} is not a scheme list", http_status=500)
    return [_to_scheme(item) for item in data if isinstance(item, dict)]


def _to_scheme(data: Dict[str, Any]) -> Scheme:
    return Scheme(
        id=str(data.get("id") or data.get("schemeId") or ""),
        name=data.get("name") or "",
        category=data.get("category") or "",
        benefits=data.get("benefits") or "",
        required_docs=list(data.get("requiredDocs") or data.get("required_docs") or []),
        description=data.get("description") or "",
        url=data.get("url") or "",
    )

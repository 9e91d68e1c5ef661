"""主/备应答方的功能开关。

开关值来自 Settings（USE_BEDROCK_AS_PRIMARY / USE_GEMINI_AS_FALLBACK），
每次编排开始时读取一次；关闭的应答方按“不可用”处理，与网络失败走同一条回退路径。
"""

from typing import Dict

from yojana_core.config.settings import settings as default_settings


class FeatureFlags:
    def __init__(self, cfg=default_settings):
        self._settings = cfg

    def is_primary_enabled(self) -> bool:
        return bool(getattr(self._settings, "use_bedrock_as_primary", True))

    def is_secondary_enabled(self) -> bool:
        return bool(getattr(self._settings, "use_gemini_as_fallback", True))

    def snapshot(self) -> Dict[str, bool]:
        return {
            "isPrimaryEnabled": self.is_primary_enabled(),
            "isFallbackEnabled": self.is_secondary_enabled(),
        }

"""系统提示词加载工具。

按语言(locale) 从 prompts/<locale> 目录读取提示词文本：
- primary_system: 主应答方的 system 提示词（人设与职责）。
- secondary_preamble: 备用应答方的前置说明，拼在用户查询之前。
"""

from functools import lru_cache
from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=None)
def load_system_prompt(name: str, locale: str = "en") -> str:
    """根据提示词名称和语言加载文本（去掉首尾空白）。"""

    fname = PROMPTS_DIR / locale / f"{name}.md"
    return fname.read_text(encoding="utf-8").strip()

# Copyright 2024 Liu Siyao
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# Modifications Copyright 2025-2026 vanilla1108

"""标题判定。

信号优先级固定：样式 > 字号 > 加粗启发式。所有函数均为纯函数，不做缓存。
"""

from typing import Optional, Tuple

from markitup.types import MAX_HEADING_LEVEL, ParagraphResult

# (最小字号, 标题级别)，按字号从大到小匹配
_FONT_SIZE_LEVELS = ((18, 1), (16, 2), (14, 3), (13, 4), (12, 5))

_TERMINAL_PUNCTUATION = ('.', '!', '?')


def _digits_level(style_name: str, default: int) -> int:
    digits = ''.join(c for c in style_name if c.isascii() and c.isdigit())
    if not digits:
        return default
    return int(digits)


def style_heading_level(style_name: Optional[str]) -> Optional[int]:
    """根据样式名推断标题级别；样式不表示标题时返回 None。"""
    if not style_name:
        return None
    lowered = style_name.lower()
    if 'subtitle' in lowered:
        return 2
    if 'heading' in lowered:
        return _digits_level(style_name, 1)
    if lowered == 'title':
        return 1
    if 'title' in lowered:
        return _digits_level(style_name, 1)
    if 'header' in lowered:
        return _digits_level(style_name, 3)
    return None


def font_size_level(font_size_pt: float) -> Optional[int]:
    for threshold, level in _FONT_SIZE_LEVELS:
        if font_size_pt >= threshold:
            return level
    return None


def classify(explicit_style: Optional[str], has_bold: bool, font_size_pt: Optional[float],
             text: str) -> Tuple[bool, int]:
    """判断一段文本是否为标题，返回 (是否标题, 级别)。"""
    style_level = style_heading_level(explicit_style)
    if style_level is not None:
        return True, style_level

    trimmed = text.strip()

    if font_size_pt is not None:
        level = font_size_level(font_size_pt)
        if level is None:
            return False, 1
        if len(trimmed) < 100 and not trimmed.endswith('.'):
            return True, level

    if (has_bold and 0 < len(trimmed) < 80 and not trimmed.endswith(_TERMINAL_PUNCTUATION) and
            '\n' not in trimmed and any(c.isalpha() for c in trimmed)):
        if len(trimmed) < 30:
            return True, 2
        if len(trimmed) < 50:
            return True, 3
        return True, 4

    return False, 1


def classify_paragraph(explicit_style: Optional[str], has_bold: bool, font_size_pt: Optional[float],
                       text: str) -> ParagraphResult:
    is_heading, level = classify(explicit_style, has_bold, font_size_pt, text)
    return ParagraphResult(is_heading=is_heading, level=level, text=text)


def is_title_text(text: str) -> bool:
    """幻灯片段落的标题启发式：短、单行、无句末标点。"""
    trimmed = text.strip()
    return len(trimmed) < 100 and not trimmed.endswith(_TERMINAL_PUNCTUATION) and '\n' not in trimmed


def render_heading(text: str, level: int) -> str:
    """生成 Markdown 标题行；级别限制在 [1, 6]，空文本不输出标题。"""
    stripped = text.strip()
    if not stripped:
        return ''
    level = max(1, min(MAX_HEADING_LEVEL, int(level)))
    return '#' * level + ' ' + stripped

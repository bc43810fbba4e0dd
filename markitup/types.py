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

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_AI_ENDPOINT = "https://ark.cn-beijing.volces.com/api/v3/chat/completions"
DEFAULT_AI_MODEL = "ep-20241022091020-pcmkf"

MAX_HEADING_LEVEL = 6


class NamingMode(str, Enum):
    Timestamp = "timestamp"
    AI = "ai"


class SlideOrder(str, Enum):
    Archive = "archive"
    Numeric = "numeric"


class ConversionConfig(BaseModel):
    """文档到 Markdown 转换的配置。

    每次转换调用显式传入，不存在进程级可变配置；对象不可变，可在线程间共享读取。
    """

    model_config = ConfigDict(frozen=True)

    image_dir: Optional[Path] = None
    """提取图片的存放目录；为空时以 base64 data URI 内嵌"""

    output_path: Optional[Path] = None
    """最终 Markdown 输出文件路径（用于计算图片相对路径）"""

    naming_mode: NamingMode = NamingMode.Timestamp
    """图片命名方式"""

    ai_api_key: Optional[str] = None
    """AI 命名服务的 API Key"""

    ai_endpoint: str = DEFAULT_AI_ENDPOINT
    """AI 命名服务地址（chat completions 接口）"""

    ai_model: str = DEFAULT_AI_MODEL
    """AI 命名使用的模型 / 接入点"""

    ai_timeout: float = 30.0
    """AI 命名请求超时（秒）"""

    slide_order: SlideOrder = SlideOrder.Numeric
    """幻灯片顺序：按文件名数字后缀排序，或保持压缩包枚举顺序"""

    strict_slides: bool = False
    """单页幻灯片解析失败时直接抛出异常，而不是跳过该页"""

    compress_blank_lines: bool = True
    """压缩连续空行（将多行空行合并为 1 行空行）"""

    speech_model: str = "small"
    """语音识别模型名称或路径"""

    @field_validator("image_dir", "output_path", mode="before")
    @classmethod
    def _empty_path_is_none(cls, value):
        if value is None:
            return None
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def embeds_images(self) -> bool:
        return self.image_dir is None


class RawDocument(BaseModel):
    """待转换的原始字节与（可选的）来源路径，路径仅用于扩展名回退。"""

    model_config = ConfigDict(frozen=True)

    data: bytes
    path: Optional[Path] = None

    @property
    def extension(self) -> str:
        if self.path is None:
            return ""
        return self.path.suffix.lower()


class TextRun(BaseModel):
    text: str
    bold: bool = False
    font_size: Optional[float] = None


class ParagraphResult(BaseModel):
    is_heading: bool
    level: int = 1
    text: str

    @field_validator("level")
    @classmethod
    def _clamp_level(cls, value: int) -> int:
        return max(1, min(MAX_HEADING_LEVEL, value))

    def render(self) -> str:
        stripped = self.text.strip()
        if self.is_heading and stripped:
            return '#' * self.level + ' ' + stripped
        return self.text


class ImageReference(BaseModel):
    generated_name: str
    mime_type: str
    extension: str
    data_base64: Optional[str] = None
    saved_path: Optional[str] = None
    """相对于输出文件（或图片目录）的引用路径"""

    @property
    def target(self) -> str:
        if self.saved_path is not None:
            return self.saved_path
        return f'data:{self.mime_type};base64,{self.data_base64}'

    @property
    def markdown(self) -> str:
        return f'![{self.generated_name}]({self.target})'


TableGrid = List[List[str]]

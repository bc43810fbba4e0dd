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

"""转换过程中的异常类型。

每个异常都带有 ``stage`` 属性，标明失败发生在哪个阶段（container / docx / slide /
image / dispatch / naming / audio ...），便于调用方给出可读的错误信息。
"""

from __future__ import annotations

from typing import Optional


class ConversionError(Exception):
    """所有转换异常的基类。"""

    stage = "conversion"

    def __init__(self, message: str, *, stage: Optional[str] = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage

    def __str__(self):
        return f"[{self.stage}] {super().__str__()}"


class ContainerError(ConversionError):
    """压缩包无法打开，或缺少/无法解析主内容条目。"""

    stage = "container"


class DocumentParseError(ConversionError):
    """文档树遍历失败。"""

    stage = "document"


class SlideParseError(DocumentParseError):
    """单页幻灯片的流式 XML 解析失败。"""

    stage = "slide"

    def __init__(self, slide_name: str, message: str):
        super().__init__(f"{slide_name}: {message}")
        self.slide_name = slide_name


class ConversionIOError(ConversionError, OSError):
    """写入图片或输出文件时的文件系统错误。"""

    stage = "io"


class UnsupportedFormat(ConversionError):
    """无法为该内容类型找到转换路由。"""

    stage = "dispatch"

    def __init__(self, mime_type: Optional[str]):
        self.mime_type = mime_type or "application/octet-stream"
        super().__init__(f"Unsupported file type: {self.mime_type}")


class NamingError(ConversionError):
    """AI 图片命名失败（总会被捕获并回退到时间戳命名）。"""

    stage = "naming"


class TranscriptionError(ConversionError):
    """音频解码或语音识别失败。"""

    stage = "audio"

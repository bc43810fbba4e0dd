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

"""将 docx / pptx / xlsx / csv / html / 图片 / 音频转换为 Markdown。"""

from .config_bridge import load_config
from .entry import convert, convert_bytes, convert_from_path, write_output
from .errors import (
    ContainerError,
    ConversionError,
    ConversionIOError,
    DocumentParseError,
    NamingError,
    SlideParseError,
    TranscriptionError,
    UnsupportedFormat,
)
from .types import ConversionConfig, NamingMode, RawDocument, SlideOrder

__all__ = [
    "convert",
    "convert_bytes",
    "convert_from_path",
    "write_output",
    "load_config",
    "ConversionConfig",
    "NamingMode",
    "RawDocument",
    "SlideOrder",
    "ConversionError",
    "ContainerError",
    "DocumentParseError",
    "SlideParseError",
    "ConversionIOError",
    "UnsupportedFormat",
    "NamingError",
    "TranscriptionError",
]

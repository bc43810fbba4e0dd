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

import logging
import os
from pathlib import Path
from typing import Optional, Union

from markitup.audio import SpeechRecognizer
from markitup.dispatch import ConversionContext, dispatch
from markitup.errors import ContainerError, ConversionIOError
from markitup.naming import ImageNamer, build_namer
from markitup.types import ConversionConfig, RawDocument

logger = logging.getLogger(__name__)


def compress_blank_lines(text: str) -> str:
    """将连续空行压缩为 1 行空行（仅含空白字符的行视为空行）。"""
    lines = text.replace('\r\n', '\n').split('\n')

    out_lines = []
    last_was_blank = False
    for line in lines:
        is_blank = line.strip() == ''
        if is_blank:
            if last_was_blank:
                continue
            out_lines.append('')
            last_was_blank = True
        else:
            out_lines.append(line)
            last_was_blank = False

    return '\n'.join(out_lines)


def finalize_markdown(markdown: str, config: ConversionConfig) -> str:
    if config.compress_blank_lines:
        markdown = compress_blank_lines(markdown)
    return markdown.rstrip('\n') + '\n'


def convert(document: RawDocument,
            config: Optional[ConversionConfig] = None,
            *,
            namer: Optional[ImageNamer] = None,
            recognizer: Optional[SpeechRecognizer] = None,
            progress_callback=None,
            disable_tqdm=True) -> str:
    """将一份文档转换为 Markdown。

    参数:
        document: 原始字节与可选来源路径（路径仅用于扩展名回退）。
        config: 转换配置，缺省时使用默认配置。
        namer: 图片命名服务；为 None 且配置启用 AI 命名时按配置创建。
        recognizer: 语音识别器；为 None 时按需创建 faster-whisper 识别器。
        progress_callback: 可选的进度更新回调，签名: (current, total, slide_name)。
        disable_tqdm: 禁用 tqdm 进度条。

    返回:
        以单个换行结尾的 Markdown 文本。
    """
    config = config or ConversionConfig()
    if namer is None:
        namer = build_namer(config)

    ctx = ConversionContext(config=config,
                            namer=namer,
                            recognizer=recognizer,
                            progress_callback=progress_callback,
                            disable_tqdm=disable_tqdm)
    markdown = dispatch(document, ctx)
    logger.info(f'conversion finished: {document.path or "<bytes>"} ({ctx.mime_type})')
    return finalize_markdown(markdown, config)


def convert_bytes(data: bytes, path: Optional[Union[str, Path]] = None, config: Optional[ConversionConfig] = None,
                  **kwargs) -> str:
    return convert(RawDocument(data=data, path=Path(path) if path else None), config, **kwargs)


def convert_from_path(path: Union[str, Path], config: Optional[ConversionConfig] = None, **kwargs) -> str:
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise ContainerError(f'Failed to read file {path}: {e}') from e
    return convert(RawDocument(data=data, path=path), config, **kwargs)


def write_output(markdown: str, output_path: Union[str, Path]) -> Path:
    output_path = Path(output_path)
    try:
        parent = output_path.parent
        if str(parent):
            os.makedirs(parent, exist_ok=True)
        with open(output_path, 'w', encoding='utf8') as f:
            f.write(markdown)
    except OSError as e:
        raise ConversionIOError(f'failed to write output file {output_path}: {e}') from e
    logger.info(f'markdown saved to {output_path}')
    return output_path

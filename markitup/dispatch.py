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

"""格式识别与路由。

先按内容（魔数）探测 MIME；结果为通用 ZIP、纯文本或无法识别时，
回退到调用方路径的扩展名，最后再查看 ZIP 内的条目。
"""

import io
import logging
import mimetypes
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional

from markitup.audio import SpeechRecognizer, WhisperRecognizer, audio_to_markdown
from markitup.docx_parser import convert_word_document
from markitup.errors import UnsupportedFormat
from markitup.html_converter import html_to_markdown
from markitup.image import image_to_markdown, sniff_image_type
from markitup.naming import ImageNamer
from markitup.pptx_parser import convert_presentation
from markitup.tabular import csv_to_markdown, xlsx_to_markdown
from markitup.types import ConversionConfig, RawDocument

logger = logging.getLogger(__name__)

DOCX_MIME = 'application/vnd.openxmlformats-officedocument.wordprocessingml.document'
PPTX_MIME = 'application/vnd.openxmlformats-officedocument.presentationml.presentation'
XLSX_MIME = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
ZIP_MIME = 'application/zip'
TEXT_MIME = 'text/plain'
CSV_MIME = 'text/csv'
HTML_MIME = 'text/html'
PDF_MIME = 'application/pdf'
OCTET_STREAM_MIME = 'application/octet-stream'

WAV_MIMES = ('audio/wav', 'audio/x-wav', 'audio/wave')
AUDIO_MIMES = WAV_MIMES + ('audio/mpeg', 'audio/ogg', 'audio/flac', 'audio/mp4', 'audio/x-m4a')
IMAGE_MIMES = ('image/jpeg', 'image/png', 'image/gif', 'image/webp')

# 探测结果为这些类型时需要扩展名辅助判断
AMBIGUOUS_MIMES = (ZIP_MIME, TEXT_MIME)

_EXTENSION_MIMES = {
    '.docx': DOCX_MIME,
    '.pptx': PPTX_MIME,
    '.xlsx': XLSX_MIME,
    '.csv': CSV_MIME,
    '.html': HTML_MIME,
    '.htm': HTML_MIME,
    '.wav': 'audio/wav',
    '.mp3': 'audio/mpeg',
    '.ogg': 'audio/ogg',
    '.flac': 'audio/flac',
    '.m4a': 'audio/mp4',
}

# 主部件 -> MIME，用于无扩展名时识别 OOXML 容器
_ZIP_MARKERS = (
    ('word/document.xml', DOCX_MIME),
    ('ppt/presentation.xml', PPTX_MIME),
    ('xl/workbook.xml', XLSX_MIME),
)

_MP3_FRAME_SYNC = (b'\xff\xfb', b'\xff\xf3', b'\xff\xf2')
_HTML_MARKERS = (b'<!doctype html', b'<html', b'<head', b'<body')


def _looks_like_html(head: bytes) -> bool:
    lowered = head.lstrip(b'\xef\xbb\xbf \t\r\n').lower()
    return lowered.startswith(_HTML_MARKERS) or b'<html' in lowered


def sniff_mime(data: bytes) -> Optional[str]:
    """按魔数探测 MIME；无法识别时返回 None。"""
    if not data:
        return None
    if data[:4] in (b'PK\x03\x04', b'PK\x05\x06', b'PK\x07\x08'):
        return ZIP_MIME
    if data[:4] == b'RIFF' and data[8:12] == b'WAVE':
        return 'audio/wav'
    if data[:3] == b'ID3' or data[:2] in _MP3_FRAME_SYNC:
        return 'audio/mpeg'
    if data[:4] == b'OggS':
        return 'audio/ogg'
    if data[:4] == b'fLaC':
        return 'audio/flac'
    if data[4:8] == b'ftyp':
        return 'audio/mp4'
    if data[:5] == b'%PDF-':
        return PDF_MIME

    image_type = sniff_image_type(data, default=None)
    if image_type is not None:
        return image_type[0]

    head = data[:1024]
    if _looks_like_html(head):
        return HTML_MIME
    if b'\x00' not in head:
        try:
            # 截断处可能落在多字节字符中间
            head.decode('utf-8')
            return TEXT_MIME
        except UnicodeDecodeError as e:
            if e.start >= len(head) - 3:
                return TEXT_MIME
    return None


def extension_mime(extension: str) -> Optional[str]:
    """按小写扩展名（含点号）推断 MIME；空扩展名返回 None。"""
    if not extension:
        return None
    if extension in _EXTENSION_MIMES:
        return _EXTENSION_MIMES[extension]
    guessed, _ = mimetypes.guess_type(f'file{extension}')
    return guessed


def inspect_zip(data: bytes) -> str:
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            names = set(archive.namelist())
    except (zipfile.BadZipFile, ValueError):
        return ZIP_MIME
    for marker, mime in _ZIP_MARKERS:
        if marker in names:
            return mime
    return ZIP_MIME


def resolve_mime(document: RawDocument) -> str:
    sniffed = sniff_mime(document.data)
    if sniffed is not None and sniffed not in AMBIGUOUS_MIMES:
        return sniffed

    by_extension = extension_mime(document.extension)
    if by_extension is not None:
        logger.debug(f'sniffed {sniffed or "unknown"} type, using extension type {by_extension}')
        return by_extension

    if sniffed == ZIP_MIME:
        return inspect_zip(document.data)
    return sniffed or OCTET_STREAM_MIME


@dataclass
class ConversionContext:
    config: ConversionConfig
    namer: Optional[ImageNamer] = None
    recognizer: Optional[SpeechRecognizer] = None
    progress_callback: Optional[Callable] = None
    disable_tqdm: bool = True
    mime_type: str = OCTET_STREAM_MIME

    def speech_recognizer(self) -> SpeechRecognizer:
        if self.recognizer is None:
            self.recognizer = WhisperRecognizer(self.config.speech_model)
        return self.recognizer


def _convert_docx(data: bytes, ctx: ConversionContext) -> str:
    return convert_word_document(data, ctx.config, ctx.namer)


def _convert_pptx(data: bytes, ctx: ConversionContext) -> str:
    return convert_presentation(data,
                                ctx.config,
                                ctx.namer,
                                progress_callback=ctx.progress_callback,
                                disable_tqdm=ctx.disable_tqdm)


def _convert_xlsx(data: bytes, ctx: ConversionContext) -> str:
    return xlsx_to_markdown(data)


def _convert_csv(data: bytes, ctx: ConversionContext) -> str:
    return csv_to_markdown(data)


def _convert_html(data: bytes, ctx: ConversionContext) -> str:
    return html_to_markdown(data)


def _convert_image(data: bytes, ctx: ConversionContext) -> str:
    return image_to_markdown(data, ctx.config, ctx.namer)


def _convert_audio(data: bytes, ctx: ConversionContext) -> str:
    return audio_to_markdown(data, ctx.speech_recognizer(), ctx.mime_type)


ROUTES: Dict[str, Callable[[bytes, ConversionContext], str]] = {
    DOCX_MIME: _convert_docx,
    PPTX_MIME: _convert_pptx,
    XLSX_MIME: _convert_xlsx,
    CSV_MIME: _convert_csv,
    HTML_MIME: _convert_html,
}
ROUTES.update({mime: _convert_image for mime in IMAGE_MIMES})
ROUTES.update({mime: _convert_audio for mime in AUDIO_MIMES})


def route(mime_type: str) -> Callable[[bytes, ConversionContext], str]:
    try:
        return ROUTES[mime_type]
    except KeyError:
        raise UnsupportedFormat(mime_type) from None


def dispatch(document: RawDocument, ctx: ConversionContext) -> str:
    """识别格式并调用对应的转换器，返回未经后处理的 Markdown。"""
    if not document.data:
        raise UnsupportedFormat(OCTET_STREAM_MIME)
    ctx.mime_type = resolve_mime(document)
    handler = route(ctx.mime_type)
    logger.info(f'converting {document.path or "<bytes>"} as {ctx.mime_type}')
    return handler(document.data, ctx)

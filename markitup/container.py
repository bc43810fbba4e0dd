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

"""OOXML 容器读取：媒体表、文档主体与幻灯片条目。

缓冲区会被扫描两遍（媒体一遍、内容一遍），两遍之间不共享可变状态。
"""

import io
import logging
import posixpath
import re
import zipfile
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

import docx
from docx.opc.constants import RELATIONSHIP_TYPE as RT
from docx.opc.exceptions import PackageNotFoundError
from lxml import etree
from pptx.opc.constants import RELATIONSHIP_TARGET_MODE

from markitup.errors import ContainerError
from markitup.types import SlideOrder

logger = logging.getLogger(__name__)

WORD_MEDIA_PREFIX = 'word/media/'
PPT_MEDIA_PREFIX = 'ppt/media/'
WORD_DOCUMENT_PART = 'word/document.xml'
PRESENTATION_PART = 'ppt/presentation.xml'

_SLIDE_ENTRY = re.compile(r'^ppt/slides/[^/]+\.xml$')
_SLIDE_NUMBER = re.compile(r'(\d+)\.xml$')
_NS_RELS = 'http://schemas.openxmlformats.org/package/2006/relationships'

MediaTable = Mapping[str, bytes]


@dataclass(frozen=True)
class WordContainer:
    media: MediaTable
    document: object
    """python-docx 的 Document 对象"""
    style_names: Mapping[str, str]
    """样式 id -> 样式名"""
    image_targets: Mapping[str, str]
    """关系 id -> 压缩包内媒体路径"""

    @property
    def body(self):
        return self.document.element.body


@dataclass(frozen=True)
class SlideEntry:
    name: str
    xml: bytes
    relationships: Mapping[str, str] = field(default_factory=dict)
    """关系 id -> 压缩包内目标路径"""


@dataclass(frozen=True)
class PresentationContainer:
    media: MediaTable
    slides: List[SlideEntry]


def open_archive(data: bytes) -> zipfile.ZipFile:
    try:
        return zipfile.ZipFile(io.BytesIO(data))
    except (zipfile.BadZipFile, ValueError) as e:
        raise ContainerError(f'not a valid ZIP archive: {e}') from e


def read_media(archive: zipfile.ZipFile, prefix: str) -> MediaTable:
    """读取 prefix 下的全部条目，按压缩包枚举顺序返回只读映射。"""
    media: Dict[str, bytes] = {}
    for info in archive.infolist():
        if info.is_dir() or not info.filename.startswith(prefix):
            continue
        try:
            media[info.filename] = archive.read(info)
        except (zipfile.BadZipFile, OSError, ValueError) as e:
            raise ContainerError(f'failed to read media entry {info.filename}: {e}') from e
    return MappingProxyType(media)


def _read_entry(archive: zipfile.ZipFile, name: str) -> Optional[bytes]:
    try:
        return archive.read(name)
    except KeyError:
        return None
    except (zipfile.BadZipFile, OSError, ValueError) as e:
        raise ContainerError(f'failed to read entry {name}: {e}') from e


def load_word_document(data: bytes) -> WordContainer:
    with open_archive(data) as archive:
        if WORD_DOCUMENT_PART not in archive.namelist():
            raise ContainerError(f'{WORD_DOCUMENT_PART} not found in archive')
        media = read_media(archive, WORD_MEDIA_PREFIX)

    try:
        document = docx.Document(io.BytesIO(data))
    except (PackageNotFoundError, KeyError, ValueError, etree.XMLSyntaxError, zipfile.BadZipFile) as e:
        raise ContainerError(f'failed to open word document: {e}') from e

    style_names = {}
    for style in document.styles:
        if style.style_id and style.name:
            style_names[style.style_id] = style.name

    image_targets = {}
    for r_id, rel in document.part.rels.items():
        if rel.is_external or rel.reltype != RT.IMAGE:
            continue
        image_targets[r_id] = str(rel.target_part.partname).lstrip('/')

    logger.debug(f'word document opened: {len(media)} media entries, {len(image_targets)} image relationships')
    return WordContainer(media=media,
                         document=document,
                         style_names=MappingProxyType(style_names),
                         image_targets=MappingProxyType(image_targets))


def parse_relationships(xml: Optional[bytes], base_dir: str) -> Dict[str, str]:
    """解析 .rels 部件，返回关系 id -> 归一化后的包内路径；缺失或损坏时返回空表。"""
    if not xml:
        return {}
    try:
        root = etree.fromstring(xml)
    except etree.XMLSyntaxError as e:
        logger.warning(f'malformed relationships part under {base_dir}, ignored: {e}')
        return {}

    targets = {}
    for rel in root.iter(f'{{{_NS_RELS}}}Relationship'):
        r_id = rel.get('Id')
        target = rel.get('Target')
        if not r_id or not target or rel.get('TargetMode') == RELATIONSHIP_TARGET_MODE.EXTERNAL:
            continue
        if target.startswith('/'):
            targets[r_id] = target.lstrip('/')
        else:
            targets[r_id] = posixpath.normpath(posixpath.join(base_dir, target))
    return targets


def slide_sort_key(name: str):
    match = _SLIDE_NUMBER.search(name)
    if match is None:
        return (1, 0, name)
    return (0, int(match.group(1)), name)


def load_presentation(data: bytes, order: SlideOrder = SlideOrder.Numeric) -> PresentationContainer:
    with open_archive(data) as archive:
        names = archive.namelist()
        if PRESENTATION_PART not in names:
            raise ContainerError(f'{PRESENTATION_PART} not found in archive')
        media = read_media(archive, PPT_MEDIA_PREFIX)

        slide_names = [name for name in names if _SLIDE_ENTRY.match(name)]
        if order == SlideOrder.Numeric:
            slide_names.sort(key=slide_sort_key)

        slides = []
        for name in slide_names:
            directory, filename = posixpath.split(name)
            rels_xml = _read_entry(archive, f'{directory}/_rels/{filename}.rels')
            slides.append(
                SlideEntry(name=name,
                           xml=_read_entry(archive, name) or b'',
                           relationships=MappingProxyType(parse_relationships(rels_xml, directory))))

    logger.debug(f'presentation opened: {len(slides)} slides, {len(media)} media entries')
    return PresentationContainer(media=media, slides=slides)

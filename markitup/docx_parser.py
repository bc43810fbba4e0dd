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

"""Word 文档（.docx）转 Markdown。

按文档顺序遍历 body 下的段落与表格：段落由 run 文本拼接并做标题判定，
图片经 ImageResolver 输出，表格交给 render_table。
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from docx.oxml.ns import qn

from markitup.container import WordContainer, load_word_document
from markitup.errors import DocumentParseError
from markitup.headings import classify, style_heading_level
from markitup.image import resolve_image, select_media
from markitup.naming import ImageNamer
from markitup.tables import escape_table_cell, render_table
from markitup.types import ConversionConfig, ParagraphResult, TextRun

logger = logging.getLogger(__name__)

_NS_MC = '{http://schemas.openxmlformats.org/markup-compatibility/2006}'
_NS_V = '{urn:schemas-microsoft-com:vml}'

# 这些容器内的 run 视为段落的一部分
_RUN_CONTAINERS = {
    qn('w:hyperlink'),
    qn('w:ins'),
    qn('w:smartTag'),
    qn('w:fldSimple'),
    qn('w:sdt'),
    qn('w:sdtContent'),
    qn('w:customXml'),
}

_FALSE_VALUES = ('0', 'false', 'off', 'none')


@dataclass
class _ParagraphContent:
    runs: List[TextRun] = field(default_factory=list)
    # (插入位置 = 当时已收集的文本长度, 关系 id)
    images: List[tuple] = field(default_factory=list)

    @property
    def text(self) -> str:
        return ''.join(run.text for run in self.runs)

    @property
    def has_bold(self) -> bool:
        return any(run.bold for run in self.runs)

    @property
    def font_size(self) -> Optional[float]:
        size = None
        for run in self.runs:
            if run.font_size is not None:
                size = run.font_size
        return size


def _alternate_choice(element):
    """mc:AlternateContent 只取第一个 mc:Choice 分支。"""
    return element.find(f'{_NS_MC}Choice')


def _is_bold(rpr) -> bool:
    if rpr is None:
        return False
    b = rpr.find(qn('w:b'))
    if b is None:
        return False
    val = b.get(qn('w:val'))
    return val is None or val.lower() not in _FALSE_VALUES


def _font_size(rpr) -> Optional[float]:
    if rpr is None:
        return None
    sz = rpr.find(qn('w:sz'))
    if sz is None:
        return None
    val = sz.get(qn('w:val'))
    if val is None:
        return None
    try:
        # 半磅 -> 磅
        return int(val) / 2.0
    except ValueError:
        return None


def _embed_ids(element) -> List[str]:
    ids = []
    for blip in element.iter(qn('a:blip')):
        r_id = blip.get(qn('r:embed'))
        if r_id:
            ids.append(r_id)
    for imagedata in element.iter(f'{_NS_V}imagedata'):
        r_id = imagedata.get(qn('r:id'))
        if r_id:
            ids.append(r_id)
    return ids


def _run_parts(run, content: _ParagraphContent, texts: List[str], offset: int):
    for child in run:
        tag = child.tag
        if tag == qn('w:t'):
            texts.append(child.text or '')
        elif tag == qn('w:tab'):
            texts.append('\t')
        elif tag in (qn('w:br'), qn('w:cr')):
            texts.append('\n')
        elif tag in (qn('w:drawing'), qn('w:pict'), qn('w:object')):
            position = offset + sum(len(t) for t in texts)
            for r_id in _embed_ids(child):
                content.images.append((position, r_id))
        elif tag == f'{_NS_MC}AlternateContent':
            choice = _alternate_choice(child)
            if choice is not None:
                _run_parts(choice, content, texts, offset)


def _collect_runs(element, content: _ParagraphContent):
    for child in element:
        tag = child.tag
        if tag == qn('w:r'):
            rpr = child.find(qn('w:rPr'))
            texts: List[str] = []
            _run_parts(child, content, texts, len(content.text))
            content.runs.append(TextRun(text=''.join(texts), bold=_is_bold(rpr), font_size=_font_size(rpr)))
        elif tag in _RUN_CONTAINERS:
            _collect_runs(child, content)
        elif tag == f'{_NS_MC}AlternateContent':
            choice = _alternate_choice(child)
            if choice is not None:
                _collect_runs(choice, content)


def _paragraph_style(p, container: WordContainer) -> Optional[str]:
    """返回可用于标题判定的样式：样式 id 本身能判定时用 id，否则用 styles.xml 中的样式名。"""
    ppr = p.find(qn('w:pPr'))
    if ppr is None:
        return None
    pstyle = ppr.find(qn('w:pStyle'))
    if pstyle is None:
        return None
    style_id = pstyle.get(qn('w:val'))
    if not style_id:
        return None
    if style_heading_level(style_id) is not None:
        return style_id
    return container.style_names.get(style_id, style_id)


class WordConverter:
    """单次 docx 转换的上下文，不跨调用复用。"""

    def __init__(self, container: WordContainer, config: ConversionConfig, namer: Optional[ImageNamer] = None):
        self.container = container
        self.config = config
        self.namer = namer

    def _image_markdown(self, r_id: str) -> Optional[str]:
        target = self.container.image_targets.get(r_id)
        selected = select_media(self.container.media, target, r_id)
        if selected is None:
            logger.debug(f'no media entry found for image {r_id}, skipped')
            return None
        _, data = selected
        if not data:
            return None
        return resolve_image(data, self.config, self.namer).markdown

    def _read_paragraph(self, p):
        content = _ParagraphContent()
        _collect_runs(p, content)
        text = content.text
        is_heading, level = classify(_paragraph_style(p, self.container), content.has_bold, content.font_size, text)
        return content, ParagraphResult(is_heading=is_heading, level=level, text=text)

    def convert_paragraph(self, p) -> List[str]:
        """返回段落产出的块：标题段落中的图片作为独立块排在标题之后。"""
        content, result = self._read_paragraph(p)
        text = result.text

        images = []
        for position, r_id in content.images:
            markdown = self._image_markdown(r_id)
            if markdown:
                images.append((position, markdown))

        if result.is_heading and text.strip():
            return [result.render()] + [markdown for _, markdown in images]

        if not images:
            return [text]
        # 普通段落：图片按原位置插入，并与文字以空行分隔
        pieces = []
        cursor = 0
        for position, markdown in images:
            pieces.append(text[cursor:position])
            pieces.append(f'\n\n{markdown}\n\n')
            cursor = position
        pieces.append(text[cursor:])
        return [''.join(pieces)]

    def _cell_text(self, tc) -> str:
        texts = []
        for p in tc.iter(qn('w:p')):
            content = _ParagraphContent()
            _collect_runs(p, content)
            stripped = content.text.strip()
            if stripped:
                texts.append(stripped)
        return escape_table_cell(' '.join(texts))

    def convert_table(self, tbl) -> str:
        rows = []
        for tr in tbl.iterchildren(qn('w:tr')):
            rows.append([self._cell_text(tc) for tc in tr.iterchildren(qn('w:tc'))])
        rows = [row for row in rows if row]
        return render_table(rows)

    def convert_blocks(self, parent) -> List[str]:
        blocks = []
        for child in parent:
            tag = child.tag
            if tag == qn('w:p'):
                blocks.extend(self.convert_paragraph(child))
            elif tag == qn('w:tbl'):
                blocks.append(self.convert_table(child))
            elif tag == qn('w:sdt'):
                sdt_content = child.find(qn('w:sdtContent'))
                if sdt_content is not None:
                    blocks.extend(self.convert_blocks(sdt_content))
        return blocks

    def convert(self) -> str:
        body = self.container.body
        if body is None:
            raise DocumentParseError('document body not found')
        try:
            blocks = self.convert_blocks(body)
        except (ValueError, TypeError, AttributeError) as e:
            raise DocumentParseError(f'failed to traverse document body: {e}') from e
        blocks = [block.strip('\n') for block in blocks if block.strip()]
        return '\n\n'.join(blocks) + '\n' if blocks else ''


def convert_word_document(data: bytes, config: ConversionConfig, namer: Optional[ImageNamer] = None) -> str:
    container = load_word_document(data)
    return WordConverter(container, config, namer).convert()

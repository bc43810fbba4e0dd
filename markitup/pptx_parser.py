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

"""演示文稿（.pptx）转 Markdown。

每页幻灯片的 XML 以流式事件解析，状态机只按元素名切换状态；
每页以 `## Slide N` 开头，页与页之间以水平线分隔。
"""

import io
import logging
from enum import Enum
from typing import Callable, List, Optional

from lxml import etree
from pptx.oxml.ns import qn
from tqdm import tqdm

from markitup.container import PresentationContainer, SlideEntry, load_presentation
from markitup.errors import SlideParseError
from markitup.headings import is_title_text, render_heading
from markitup.image import resolve_image, select_media
from markitup.naming import ImageNamer
from markitup.tables import escape_table_cell, render_table
from markitup.types import ConversionConfig

logger = logging.getLogger(__name__)

_NS_MC = '{http://schemas.openxmlformats.org/markup-compatibility/2006}'

_TAG_TXBODY = qn('p:txBody')
_TAG_TBL = qn('a:tbl')
_TAG_TR = qn('a:tr')
_TAG_TC = qn('a:tc')
_TAG_P = qn('a:p')
_TAG_T = qn('a:t')
_TAG_BR = qn('a:br')
_TAG_BLIP = qn('a:blip')
_ATTR_EMBED = qn('r:embed')
_TAG_FALLBACK = f'{_NS_MC}Fallback'

SLIDE_SEPARATOR = '\n\n---\n\n'

# 单个 blip 的解析回调：embed id -> 图片 Markdown
BlipResolver = Callable[[str], str]


class SlideState(Enum):
    Outside = 'outside'
    TextBody = 'text_body'
    Table = 'table'
    TableCell = 'table_cell'


def _text_body_line(paragraph: str) -> Optional[str]:
    trimmed = paragraph.strip()
    if not trimmed:
        return None
    if is_title_text(paragraph):
        return render_heading(trimmed, 3)
    # 软换行后的内容缩进两格，仍属于同一列表项
    lines = [line.strip() for line in trimmed.split('\n')]
    return '- ' + '\n  '.join(line for line in lines if line)


class _SlideMachine:

    def __init__(self, resolve_blip: BlipResolver):
        self.resolve_blip = resolve_blip
        self.state = SlideState.Outside
        self.fallback_depth = 0
        self.blocks: List[str] = []
        self.lines: List[str] = []
        self.paragraph: List[str] = []
        self.rows: List[List[str]] = []
        self.cell: List[str] = []

    def start(self, element):
        tag = element.tag
        if tag == _TAG_FALLBACK:
            self.fallback_depth += 1
            return
        if self.fallback_depth:
            return

        if tag == _TAG_BLIP:
            embed_id = element.get(_ATTR_EMBED)
            if embed_id:
                self.blocks.append(self.resolve_blip(embed_id))
        elif self.state == SlideState.Outside:
            if tag == _TAG_TXBODY:
                self.state = SlideState.TextBody
                self.lines = []
                self.paragraph = []
            elif tag == _TAG_TBL:
                self.state = SlideState.Table
                self.rows = []
        elif self.state == SlideState.Table:
            if tag == _TAG_TR:
                self.rows.append([])
            elif tag == _TAG_TC:
                self.state = SlideState.TableCell
                self.cell = []

    def end(self, element):
        tag = element.tag
        if tag == _TAG_FALLBACK:
            self.fallback_depth -= 1
            return
        if self.fallback_depth:
            return

        if self.state == SlideState.TextBody:
            if tag == _TAG_T:
                self.paragraph.append(element.text or '')
            elif tag == _TAG_BR:
                self.paragraph.append('\n')
            elif tag == _TAG_P:
                line = _text_body_line(''.join(self.paragraph))
                if line:
                    self.lines.append(line)
                self.paragraph = []
            elif tag == _TAG_TXBODY:
                if self.lines:
                    self.blocks.append('\n'.join(self.lines))
                self.state = SlideState.Outside
        elif self.state == SlideState.TableCell:
            if tag == _TAG_T:
                self.cell.append(element.text or '')
            elif tag in (_TAG_BR, _TAG_P):
                self.cell.append(' ')
            elif tag == _TAG_TC:
                if self.rows:
                    self.rows[-1].append(escape_table_cell(' '.join(''.join(self.cell).split())))
                self.state = SlideState.Table
        elif self.state == SlideState.Table:
            if tag == _TAG_TBL:
                table = render_table([row for row in self.rows if row])
                if table:
                    self.blocks.append(table.rstrip('\n'))
                self.state = SlideState.Outside

        if self.state == SlideState.Outside:
            element.clear(keep_tail=True)


def parse_slide(xml: bytes, resolve_blip: BlipResolver, slide_name: str = '') -> str:
    """解析一页幻灯片 XML，返回该页正文（不含 `## Slide N` 标题）。

    XML 损坏或提前结束时抛出 SlideParseError，只影响当前页。
    """
    machine = _SlideMachine(resolve_blip)
    try:
        for event, element in etree.iterparse(io.BytesIO(xml), events=('start', 'end')):
            if event == 'start':
                machine.start(element)
            else:
                machine.end(element)
    except etree.XMLSyntaxError as e:
        raise SlideParseError(slide_name, str(e)) from e
    return '\n\n'.join(machine.blocks)


class PresentationConverter:
    """单次 pptx 转换的上下文。"""

    def __init__(self, container: PresentationContainer, config: ConversionConfig,
                 namer: Optional[ImageNamer] = None):
        self.container = container
        self.config = config
        self.namer = namer

    def blip_resolver(self, slide: SlideEntry) -> BlipResolver:

        def resolve(embed_id: str) -> str:
            selected = select_media(self.container.media, slide.relationships.get(embed_id), embed_id)
            if selected is None or not selected[1]:
                return f'![Image not found]({embed_id})'
            return resolve_image(selected[1], self.config, self.namer).markdown

        return resolve

    def convert_slide(self, slide: SlideEntry, number: int) -> str:
        try:
            body = parse_slide(slide.xml, self.blip_resolver(slide), slide.name)
        except SlideParseError as e:
            if self.config.strict_slides:
                raise
            logger.warning(f'slide {number} ({slide.name}) could not be parsed, skipped: {e}')
            body = f'<!-- slide {number} could not be parsed: {e} -->'
        header = f'## Slide {number}'
        return f'{header}\n\n{body}' if body else header

    def convert(self, progress_callback=None, disable_tqdm=True) -> str:
        """逐页转换。

        参数:
            progress_callback: 可选的进度更新回调，签名: (current, total, slide_name)。
            disable_tqdm: 禁用 tqdm 进度条（库调用与 GUI 默认禁用）。
        """
        slides = self.container.slides
        total_slides = len(slides)
        iterator = slides if disable_tqdm else tqdm(slides, desc='Converting slides')

        parts = []
        for idx, slide in enumerate(iterator):
            if progress_callback:
                progress_callback(idx + 1, total_slides, f'Slide {idx + 1}')
            parts.append(self.convert_slide(slide, idx + 1))

        if not parts:
            return ''
        return SLIDE_SEPARATOR.join(parts) + '\n'


def convert_presentation(data: bytes,
                         config: ConversionConfig,
                         namer: Optional[ImageNamer] = None,
                         progress_callback=None,
                         disable_tqdm=True) -> str:
    container = load_presentation(data, config.slide_order)
    return PresentationConverter(container, config, namer).convert(progress_callback=progress_callback,
                                                                   disable_tqdm=disable_tqdm)

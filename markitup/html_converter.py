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

import re

import markdownify
from bs4 import BeautifulSoup

from markitup.errors import DocumentParseError

_EXTRA_BLANK_LINES = re.compile(r'\n[ \t]*\n(?:[ \t]*\n)+')


class HtmlMarkdownConverter(markdownify.MarkdownConverter):
    """ATX 标题风格的 markdownify 转换器。"""

    def __init__(self, **options):
        options.setdefault('heading_style', markdownify.ATX)
        options.setdefault('bullets', '-')
        super().__init__(**options)


def html_to_markdown(data: bytes) -> str:
    try:
        html = data.decode('utf-8')
    except UnicodeDecodeError as e:
        raise DocumentParseError(f'Invalid UTF-8 encoding: {e}') from e

    soup = BeautifulSoup(html, 'html.parser')
    for element in soup(['script', 'style']):
        element.decompose()

    body = soup.find('body')
    markdown = HtmlMarkdownConverter().convert_soup(body if body is not None else soup)
    if not markdown.strip():
        raise DocumentParseError('Empty or invalid HTML content')
    # 块级元素之间最多保留一个空行
    return _EXTRA_BLANK_LINES.sub('\n\n', markdown.strip()) + '\n'

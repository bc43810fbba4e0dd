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

from typing import Sequence


def _table_row(cells: Sequence[str]) -> str:
    return '| ' + ' | '.join(cells) + ' |'


def render_table(rows: Sequence[Sequence[str]]) -> str:
    """将行列数据渲染为 Markdown 管道表格。

    第一行作为表头，分隔行的列数取第一行的单元格数；其余行原样输出，
    不补齐也不截断。空输入返回空串。
    """
    if not rows:
        return ''
    header = rows[0]
    lines = [_table_row(header), '|' + '---|' * len(header)]
    lines.extend(_table_row(row) for row in rows[1:])
    return '\n'.join(lines) + '\n'


def escape_table_cell(text) -> str:
    """转义单元格内容，避免破坏管道表格结构。"""
    if text is None:
        return ''
    text = str(text)
    text = text.replace('\r\n', '\n').replace('\r', '\n').replace('\x0b', '\n')
    text = text.replace('\t', ' ')
    text = text.replace('|', '\\|')
    text = text.strip()
    return text.replace('\n', '<br>')

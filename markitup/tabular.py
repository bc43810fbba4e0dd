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

"""CSV 与电子表格（.xlsx）转换。"""

import csv
import io
import logging
import zipfile
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from markitup.errors import ContainerError, DocumentParseError
from markitup.tables import escape_table_cell, render_table
from markitup.types import TableGrid

logger = logging.getLogger(__name__)


def csv_to_markdown(data: bytes) -> str:
    """读取 UTF-8 CSV（允许 BOM），第一行作为表头输出 Markdown 表格。"""
    try:
        text = data.decode('utf-8-sig')
    except UnicodeDecodeError as e:
        raise DocumentParseError(f'CSV is not valid UTF-8: {e}') from e

    rows: TableGrid = []
    try:
        for record in csv.reader(io.StringIO(text)):
            cells = [escape_table_cell(cell.strip()) for cell in record]
            if any(cells):
                rows.append(cells)
    except csv.Error as e:
        raise DocumentParseError(f'CSV parsing error: {e}') from e

    if not rows:
        raise DocumentParseError('Empty or invalid CSV data')
    return render_table(rows)


def cell_text(value) -> str:
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'TRUE' if value else 'FALSE'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def iter_sheets(data: bytes) -> Iterator[Tuple[str, TableGrid]]:
    """按工作簿顺序产出 (工作表名, 行)；公式取缓存值。"""
    try:
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, OSError) as e:
        raise ContainerError(f'failed to open workbook: {e}') from e

    try:
        for sheet in workbook.worksheets:
            rows = [[cell_text(value) for value in row] for row in sheet.iter_rows(values_only=True)]
            yield sheet.title, rows
    finally:
        workbook.close()


def read_workbook(data: bytes) -> List[Tuple[str, TableGrid]]:
    return list(iter_sheets(data))


def xlsx_to_markdown(data: bytes) -> str:
    """每个工作表输出 `## <工作表名>` 与其表格，完全为空的行被跳过。"""
    sections = []
    for name, rows in iter_sheets(data):
        rows = [[escape_table_cell(cell) for cell in row] for row in rows if any(cell.strip() for cell in row)]
        table = render_table(rows)
        if table:
            sections.append(f'## {name}\n\n{table.rstrip()}')
        else:
            sections.append(f'## {name}')
    if not sections:
        raise DocumentParseError('no sheets found in workbook')
    return '\n\n'.join(sections) + '\n'


@dataclass(frozen=True)
class CsvExportOptions:
    delimiter: str = ','
    use_header: bool = False
    """以首行第一个空单元格之前的列数截断所有行"""


@dataclass
class CsvExport:
    sheet_names: List[str] = field(default_factory=list)
    csv_data: List[str] = field(default_factory=list)

    def get_by_name(self, name: str) -> Optional[str]:
        try:
            return self.csv_data[self.sheet_names.index(name)]
        except ValueError:
            return None


def _sheet_to_csv(rows: TableGrid, options: CsvExportOptions) -> str:
    output = io.StringIO()
    writer = csv.writer(output, delimiter=options.delimiter, lineterminator='\n')
    if options.use_header and rows:
        header = rows[0]
        column_count = next((i for i, cell in enumerate(header) if not cell), len(header))
        rows = [row[:column_count] for row in rows]
    writer.writerows(rows)
    return output.getvalue()


def xlsx_to_csv(data: bytes, options: Optional[CsvExportOptions] = None) -> CsvExport:
    options = options or CsvExportOptions()
    if len(options.delimiter) != 1:
        raise ValueError(f'CSV delimiter must be a single character: {options.delimiter!r}')

    result = CsvExport()
    for name, rows in iter_sheets(data):
        result.sheet_names.append(name)
        result.csv_data.append(_sheet_to_csv(rows, options))
    if not result.sheet_names:
        raise DocumentParseError('no sheets found in workbook')
    logger.debug(f'exported {len(result.sheet_names)} sheets to CSV')
    return result

"""统一入口测试：后处理、路径读取与输出写入。"""

import io
import re

import pytest

from markitup import convert_bytes, convert_from_path, write_output
from markitup.entry import compress_blank_lines, finalize_markdown
from markitup.errors import ContainerError, ConversionIOError, UnsupportedFormat
from markitup.types import ConversionConfig
from tests.conftest import build_python_docx, make_pptx, picture_shape, slide_xml, text_shape


def test_compress_blank_lines():
    assert compress_blank_lines("a\n\n\n\nb") == "a\n\nb"
    assert compress_blank_lines("a\r\n  \n\t\nb") == "a\n\nb"
    assert compress_blank_lines("a\nb") == "a\nb"


def test_finalize_markdown():
    assert finalize_markdown("a\n\n\nb\n\n", ConversionConfig()) == "a\n\nb\n"
    assert finalize_markdown("a\n\n\nb", ConversionConfig(compress_blank_lines=False)) == "a\n\n\nb\n"
    assert finalize_markdown("", ConversionConfig()) == "\n"


def _sample_docx(png):

    def populate(document):
        document.add_heading("Intro", level=1)
        document.add_paragraph("Body text.")
        document.add_picture(io.BytesIO(png))

    return build_python_docx(populate)


def test_repeated_conversion_is_stable(red_png):
    data = _sample_docx(red_png)
    first = re.sub(r"pic-\d+", "pic", convert_bytes(data))
    second = re.sub(r"pic-\d+", "pic", convert_bytes(data))
    assert first == second
    assert first.startswith("# Intro\n\nBody text.\n\n![pic](data:image/png;base64,")


def test_empty_word_document_is_single_newline():
    assert convert_bytes(build_python_docx(lambda document: None), "empty.docx") == "\n"


def test_pptx_with_saved_images(tmp_path, red_png):
    data = make_pptx({"slide1.xml": slide_xml(text_shape("Title") + picture_shape("rId1"))},
                     media={"ppt/media/image1.png": red_png},
                     slide_rels={"slide1.xml": {"rId1": "../media/image1.png"}})
    config = ConversionConfig(image_dir=tmp_path / "out" / "images", output_path=tmp_path / "out" / "deck.md")

    output = convert_bytes(data, "deck.pptx", config)

    match = re.fullmatch(r"## Slide 1\n\n### Title\n\n!\[pic-\d+\]\(images/(pic-\d+\.png)\)\n", output)
    assert match
    assert (tmp_path / "out" / "images" / match.group(1)).read_bytes() == red_png


def test_convert_from_path(tmp_path):
    source = tmp_path / "table.csv"
    source.write_bytes(b"x,y\n1,2\n")
    assert convert_from_path(source) == "| x | y |\n|---|---|\n| 1 | 2 |\n"


def test_convert_from_missing_path(tmp_path):
    with pytest.raises(ContainerError) as exc_info:
        convert_from_path(tmp_path / "missing.docx")
    assert "Failed to read file" in str(exc_info.value)


def test_unsupported_bytes():
    with pytest.raises(UnsupportedFormat):
        convert_bytes(b"%PDF-1.4\n...", "paper.pdf")


def test_write_output(tmp_path):
    target = write_output("# Hi\n", tmp_path / "nested" / "out.md")
    assert target.read_text(encoding="utf8") == "# Hi\n"


def test_write_output_failure(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    with pytest.raises(ConversionIOError):
        write_output("# Hi\n", blocker / "out.md")

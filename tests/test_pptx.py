"""演示文稿转换测试。"""

import base64
import io
import logging
import re

import pytest
from pptx.util import Inches

from markitup.errors import SlideParseError
from markitup.pptx_parser import SLIDE_SEPARATOR, convert_presentation, parse_slide
from markitup.types import ConversionConfig, NamingMode, SlideOrder
from tests.conftest import (
    FakeNamer,
    build_python_pptx,
    make_pptx,
    picture_shape,
    slide_xml,
    text_shape,
)

BLANK_LAYOUT = 6


def _convert(data, config=None, **kwargs):
    return convert_presentation(data, config or ConversionConfig(), **kwargs)


def _sample_deck(png):

    def populate(prs):
        slide = prs.slides.add_slide(prs.slide_layouts[BLANK_LAYOUT])
        frame = slide.shapes.add_textbox(Inches(1), Inches(1), Inches(4), Inches(1)).text_frame
        frame.text = "Agenda"
        frame.add_paragraph().text = "This is a sentence."

        table = slide.shapes.add_table(2, 2, Inches(1), Inches(2), Inches(4), Inches(1)).table
        table.cell(0, 0).text = "a"
        table.cell(0, 1).text = "b"
        table.cell(1, 0).text = "1"
        table.cell(1, 1).text = "2"

        slide.shapes.add_picture(io.BytesIO(png), Inches(1), Inches(4))

        second = prs.slides.add_slide(prs.slide_layouts[BLANK_LAYOUT])
        second.shapes.add_textbox(Inches(1), Inches(1), Inches(4), Inches(1)).text_frame.text = "Second"

    return build_python_pptx(populate)


# ---------------------------------------------------------------------------
# python-pptx 生成的演示文稿
# ---------------------------------------------------------------------------


def test_deck_content(red_png):
    output = _convert(_sample_deck(red_png))
    payload = base64.b64encode(red_png).decode("ascii")

    first, second = output.split(SLIDE_SEPARATOR)
    assert re.fullmatch(
        r"## Slide 1\n\n### Agenda\n- This is a sentence\.\n\n"
        r"\| a \| b \|\n\|---\|---\|\n\| 1 \| 2 \|\n\n"
        r"!\[pic-\d+\]\(data:image/png;base64," + re.escape(payload) + r"\)",
        first,
    )
    assert second == "## Slide 2\n\n### Second\n"


def test_progress_callback(red_png):
    calls = []
    _convert(_sample_deck(red_png), progress_callback=lambda *args: calls.append(args))
    assert calls == [(1, 2, "Slide 1"), (2, 2, "Slide 2")]


def test_tqdm_enabled_does_not_change_output(red_png):
    data = _sample_deck(red_png)
    config = ConversionConfig(image_dir=None)
    quiet = re.sub(r"pic-\d+", "pic", _convert(data, config))
    loud = re.sub(r"pic-\d+", "pic", _convert(data, config, disable_tqdm=False))
    assert quiet == loud


# ---------------------------------------------------------------------------
# 手工拼装的幻灯片
# ---------------------------------------------------------------------------


def test_numeric_and_archive_order():
    data = make_pptx({
        "slide10.xml": slide_xml(text_shape("ten")),
        "slide2.xml": slide_xml(text_shape("two")),
    })

    assert _convert(data) == "## Slide 1\n\n### two\n\n---\n\n## Slide 2\n\n### ten\n"
    assert _convert(data, ConversionConfig(slide_order=SlideOrder.Archive)) == \
        "## Slide 1\n\n### ten\n\n---\n\n## Slide 2\n\n### two\n"


def test_bullets_and_line_breaks():
    shape = ("<p:sp><p:txBody><a:bodyPr/>"
             "<a:p><a:r><a:t>A full sentence.</a:t></a:r></a:p>"
             "<a:p><a:r><a:t>one</a:t></a:r><a:br/><a:r><a:t>two</a:t></a:r></a:p>"
             "<a:p/>"
             "</p:txBody></p:sp>")
    data = make_pptx({"slide1.xml": slide_xml(shape)})
    assert _convert(data) == "## Slide 1\n\n- A full sentence.\n- one\n  two\n"


def test_empty_slide_and_empty_deck():
    assert _convert(make_pptx({"slide1.xml": slide_xml("")})) == "## Slide 1\n"
    assert _convert(make_pptx({})) == ""


def test_missing_image_placeholder():
    data = make_pptx({"slide1.xml": slide_xml(picture_shape("rId3"))},
                     media={"ppt/media/image1.emf": b"emf"})
    assert _convert(data) == "## Slide 1\n\n![Image not found](rId3)\n"


def test_picture_resolved_through_relationship(red_png, blue_png):
    data = make_pptx({"slide1.xml": slide_xml(picture_shape("rId2"))},
                     media={"ppt/media/image1.png": red_png, "ppt/media/image2.png": blue_png},
                     slide_rels={"slide1.xml": {"rId2": "../media/image2.png"}})
    output = _convert(data)
    assert base64.b64encode(blue_png).decode("ascii") in output
    assert base64.b64encode(red_png).decode("ascii") not in output


def test_unsupported_picture_format_uses_placeholder(red_png):
    data = make_pptx({"slide1.xml": slide_xml(picture_shape("rId2"))},
                     media={"ppt/media/image1.emf": b"\x01\x00\x00\x00 EMF", "ppt/media/image2.png": red_png},
                     slide_rels={"slide1.xml": {"rId2": "../media/image1.emf"}})
    output = _convert(data)
    assert output == "## Slide 1\n\n![Image not found](rId2)\n"
    assert "base64" not in output


def test_namer_crash_does_not_abort_deck(red_png):
    data = make_pptx({"slide1.xml": slide_xml(picture_shape("rId1"))},
                     media={"ppt/media/image1.png": red_png},
                     slide_rels={"slide1.xml": {"rId1": "../media/image1.png"}})
    namer = FakeNamer(error=RuntimeError("socket closed"))
    output = _convert(data, ConversionConfig(naming_mode=NamingMode.AI), namer=namer)
    assert re.match(r"## Slide 1\n\n!\[pic-\d+\]\(data:image/png;base64,", output)


def test_fallback_branch_is_skipped():
    shapes = ("<mc:AlternateContent>"
              f'<mc:Choice Requires="p14">{text_shape("modern")}</mc:Choice>'
              f"<mc:Fallback>{text_shape('legacy')}{picture_shape('rId1')}</mc:Fallback>"
              "</mc:AlternateContent>")
    data = make_pptx({"slide1.xml": slide_xml(shapes)})
    assert _convert(data) == "## Slide 1\n\n### modern\n"


def test_malformed_slide_is_skipped(caplog):
    data = make_pptx({
        "slide1.xml": b"this is not xml",
        "slide2.xml": slide_xml(text_shape("fine")),
    })
    with caplog.at_level(logging.WARNING, logger="markitup.pptx_parser"):
        output = _convert(data)

    first, second = output.split(SLIDE_SEPARATOR)
    assert first.startswith("## Slide 1\n\n<!-- slide 1 could not be parsed:")
    assert first.endswith("-->")
    assert second == "## Slide 2\n\n### fine\n"
    assert "could not be parsed" in caplog.text


def test_malformed_slide_raises_when_strict():
    data = make_pptx({"slide1.xml": b"this is not xml"})
    with pytest.raises(SlideParseError) as exc_info:
        _convert(data, ConversionConfig(strict_slides=True))
    assert exc_info.value.slide_name == "ppt/slides/slide1.xml"
    assert exc_info.value.stage == "slide"


def test_parse_slide_table():
    shapes = ("<p:graphicFrame><a:graphic><a:graphicData><a:tbl>"
              "<a:tr><a:tc><a:txBody><a:p><a:r><a:t>h|1</a:t></a:r></a:p></a:txBody></a:tc>"
              "<a:tc><a:txBody><a:p><a:r><a:t>h2</a:t></a:r></a:p><a:p><a:r><a:t>more</a:t></a:r></a:p>"
              "</a:txBody></a:tc></a:tr>"
              "<a:tr><a:tc><a:txBody><a:p/></a:txBody></a:tc><a:tc><a:txBody><a:p><a:r><a:t>x</a:t></a:r></a:p>"
              "</a:txBody></a:tc></a:tr>"
              "</a:tbl></a:graphicData></a:graphic></p:graphicFrame>")
    body = parse_slide(slide_xml(shapes), lambda embed_id: "")
    assert body == "| h\\|1 | h2 more |\n|---|---|\n|  | x |"

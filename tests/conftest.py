"""测试共享 fixture 和工具函数。

提供：
- 用 python-docx / python-pptx / openpyxl / Pillow 生成的真实样本
- 直接拼装 ZIP + XML 的最小 OOXML 容器（用于构造异常或特殊结构）
- 命名服务、HTTP session、语音识别器的替身
"""

import io
import wave
import zipfile
from typing import Dict, Iterable, Optional

import pytest
import requests
from PIL import Image

# ---------------------------------------------------------------------------
# 命名空间常量
# ---------------------------------------------------------------------------

NS_W = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
NS_R = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
NS_A = "http://schemas.openxmlformats.org/drawingml/2006/main"
NS_P = "http://schemas.openxmlformats.org/presentationml/2006/main"
NS_WP = "http://schemas.openxmlformats.org/drawingml/2006/wordprocessingDrawing"
NS_PIC = "http://schemas.openxmlformats.org/drawingml/2006/picture"
NS_MC = "http://schemas.openxmlformats.org/markup-compatibility/2006"
NS_PKG_RELS = "http://schemas.openxmlformats.org/package/2006/relationships"

RT_IMAGE = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/image"
RT_OFFICE_DOCUMENT = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/officeDocument"


# ---------------------------------------------------------------------------
# 图片 / 压缩包
# ---------------------------------------------------------------------------

def png_bytes(color=(255, 0, 0), size=(2, 2)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def gif_bytes(color=(0, 0, 255)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (2, 2), color).save(buf, format="GIF")
    return buf.getvalue()


def make_zip(entries: Dict[str, bytes]) -> bytes:
    """按给定顺序写入条目，返回 ZIP 字节。"""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return buf.getvalue()


def rels_xml(relationships: Iterable[tuple]) -> bytes:
    """relationships: (Id, Type, Target[, TargetMode])。"""
    items = []
    for rel in relationships:
        mode = f' TargetMode="{rel[3]}"' if len(rel) > 3 else ""
        items.append(f'<Relationship Id="{rel[0]}" Type="{rel[1]}" Target="{rel[2]}"{mode}/>')
    return (f'<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
            f'<Relationships xmlns="{NS_PKG_RELS}">{"".join(items)}</Relationships>').encode("utf-8")


# ---------------------------------------------------------------------------
# 最小 docx 容器
# ---------------------------------------------------------------------------

_DOCX_CONTENT_TYPES = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
    '<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
    '<Default Extension="xml" ContentType="application/xml"/>'
    '<Default Extension="png" ContentType="image/png"/>'
    '<Default Extension="gif" ContentType="image/gif"/>'
    '<Override PartName="/word/document.xml" '
    'ContentType="application/vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml"/>'
    '</Types>').encode("utf-8")


def docx_document_xml(body: str) -> bytes:
    return (f'<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
            f'<w:document xmlns:w="{NS_W}" xmlns:r="{NS_R}" xmlns:a="{NS_A}" xmlns:wp="{NS_WP}" '
            f'xmlns:pic="{NS_PIC}" xmlns:mc="{NS_MC}"><w:body>{body}</w:body></w:document>').encode("utf-8")


def make_docx(body: str, media: Optional[Dict[str, bytes]] = None, image_rels: Optional[Dict[str, str]] = None) -> bytes:
    """拼装最小 docx。

    参数:
        body: w:body 内的 XML 片段。
        media: {"word/media/xxx.png": bytes}，按插入顺序写入压缩包。
        image_rels: {rId: "media/xxx.png"}。
    """
    entries = {
        "[Content_Types].xml": _DOCX_CONTENT_TYPES,
        "_rels/.rels": rels_xml([("rId1", RT_OFFICE_DOCUMENT, "word/document.xml")]),
        "word/document.xml": docx_document_xml(body),
        "word/_rels/document.xml.rels": rels_xml([(r_id, RT_IMAGE, target)
                                                  for r_id, target in (image_rels or {}).items()]),
    }
    entries.update(media or {})
    return make_zip(entries)


def w_run(text: str, bold: Optional[str] = None, size_half_points: Optional[int] = None) -> str:
    props = ""
    if bold is not None:
        props += "<w:b/>" if bold == "" else f'<w:b w:val="{bold}"/>'
    if size_half_points is not None:
        props += f'<w:sz w:val="{size_half_points}"/>'
    rpr = f"<w:rPr>{props}</w:rPr>" if props else ""
    return f'<w:r>{rpr}<w:t xml:space="preserve">{text}</w:t></w:r>'


def w_drawing(r_id: str) -> str:
    return ('<w:r><w:drawing><wp:inline><a:graphic>'
            '<a:graphicData uri="http://schemas.openxmlformats.org/drawingml/2006/picture">'
            f'<pic:pic><pic:blipFill><a:blip r:embed="{r_id}"/></pic:blipFill></pic:pic>'
            '</a:graphicData></a:graphic></wp:inline></w:drawing></w:r>')


def w_paragraph(*runs: str, style: Optional[str] = None) -> str:
    ppr = f'<w:pPr><w:pStyle w:val="{style}"/></w:pPr>' if style else ""
    return f"<w:p>{ppr}{''.join(runs)}</w:p>"


# ---------------------------------------------------------------------------
# 最小 pptx 容器
# ---------------------------------------------------------------------------

def slide_xml(shapes: str) -> bytes:
    return (f'<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
            f'<p:sld xmlns:p="{NS_P}" xmlns:a="{NS_A}" xmlns:r="{NS_R}" xmlns:mc="{NS_MC}">'
            f'<p:cSld><p:spTree>{shapes}</p:spTree></p:cSld></p:sld>').encode("utf-8")


def text_shape(*paragraphs: str) -> str:
    body = "".join(f"<a:p><a:r><a:t>{text}</a:t></a:r></a:p>" for text in paragraphs)
    return f"<p:sp><p:txBody><a:bodyPr/>{body}</p:txBody></p:sp>"


def picture_shape(r_id: str) -> str:
    return f'<p:pic><p:blipFill><a:blip r:embed="{r_id}"/></p:blipFill></p:pic>'


def make_pptx(slides: Dict[str, bytes],
              media: Optional[Dict[str, bytes]] = None,
              slide_rels: Optional[Dict[str, Dict[str, str]]] = None) -> bytes:
    """拼装最小 pptx。slides 的键为文件名（如 slide1.xml），按给定顺序写入。"""
    entries = {
        "[Content_Types].xml": b'<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types"/>',
        "ppt/presentation.xml": f'<p:presentation xmlns:p="{NS_P}"/>'.encode("utf-8"),
    }
    entries.update(media or {})
    for name, xml in slides.items():
        entries[f"ppt/slides/{name}"] = xml
    for name, rels in (slide_rels or {}).items():
        entries[f"ppt/slides/_rels/{name}.rels"] = rels_xml([(r_id, RT_IMAGE, target) for r_id, target in rels.items()])
    return make_zip(entries)


# ---------------------------------------------------------------------------
# 用真实库生成的样本
# ---------------------------------------------------------------------------

def build_python_docx(populate) -> bytes:
    import docx

    document = docx.Document()
    populate(document)
    buf = io.BytesIO()
    document.save(buf)
    return buf.getvalue()


def build_python_pptx(populate) -> bytes:
    from pptx import Presentation

    prs = Presentation()
    populate(prs)
    buf = io.BytesIO()
    prs.save(buf)
    return buf.getvalue()


def build_workbook(sheets: Dict[str, list]) -> bytes:
    from openpyxl import Workbook

    workbook = Workbook()
    workbook.remove(workbook.active)
    for title, rows in sheets.items():
        sheet = workbook.create_sheet(title)
        for row in rows:
            sheet.append(row)
    buf = io.BytesIO()
    workbook.save(buf)
    return buf.getvalue()


def wav_bytes(samples, channels=1, sample_rate=8000, sample_width=2) -> bytes:
    """samples 为交错后的整数采样。"""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as writer:
        writer.setnchannels(channels)
        writer.setsampwidth(sample_width)
        writer.setframerate(sample_rate)
        if sample_width == 2:
            frames = b"".join(int(s).to_bytes(2, "little", signed=True) for s in samples)
        else:
            frames = bytes(int(s) & 0xFF for s in samples)
        writer.writeframes(frames)
    return buf.getvalue()


# ---------------------------------------------------------------------------
# 替身
# ---------------------------------------------------------------------------

class FakeNamer:

    def __init__(self, name="fake-name", error=None):
        self.name = name
        self.error = error
        self.calls = []

    def generate_name(self, image, mime_type):
        self.calls.append((image, mime_type))
        if self.error is not None:
            raise self.error
        return self.name


class FakeResponse:

    def __init__(self, payload=None, status_code=200, invalid_json=False):
        self.payload = payload
        self.status_code = status_code
        self.invalid_json = invalid_json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if self.invalid_json:
            raise ValueError("no json")
        return self.payload


class FakeSession:

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.requests.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


class FakeRecognizer:
    engine_name = "fake-engine"

    def __init__(self, text="hello world"):
        self.text = text
        self.calls = []

    def transcribe(self, pcm, sample_rate):
        self.calls.append((pcm, sample_rate))
        return self.text


@pytest.fixture
def fake_namer() -> FakeNamer:
    return FakeNamer()


@pytest.fixture
def fake_recognizer() -> FakeRecognizer:
    return FakeRecognizer()


@pytest.fixture
def red_png() -> bytes:
    return png_bytes((255, 0, 0))


@pytest.fixture
def blue_png() -> bytes:
    return png_bytes((0, 0, 255))

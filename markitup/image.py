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

"""图片引用解析：类型探测、命名、内嵌或落盘。

DOCX、PPTX 与独立图片文件共用这里的策略。
"""

import base64
import io
import logging
import os
from pathlib import Path
from typing import Mapping, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from markitup.errors import ConversionIOError, NamingError
from markitup.naming import ImageNamer, timestamp_name
from markitup.types import ConversionConfig, ImageReference, NamingMode

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_TYPE = ('image/jpeg', 'jpg')

# 压缩包内可直接作为图片输出的扩展名
ALLOWED_MEDIA_EXTENSIONS = ('.png', '.jpg', '.jpeg', '.gif', '.webp')

_FORMAT_EXTENSIONS = {
    'JPEG': 'jpg',
    'PNG': 'png',
    'GIF': 'gif',
    'WEBP': 'webp',
}


def sniff_image_type(data: bytes, default: Optional[Tuple[str, str]] = DEFAULT_IMAGE_TYPE):
    """按内容探测图片类型，返回 (mime, 扩展名)；无法识别时返回 default。"""
    try:
        with Image.open(io.BytesIO(data), formats=tuple(_FORMAT_EXTENSIONS)) as img:
            fmt = img.format
    except (UnidentifiedImageError, OSError, ValueError):
        return default
    if not fmt:
        return default
    mime = Image.MIME.get(fmt)
    if not mime:
        return default
    return mime, _FORMAT_EXTENSIONS.get(fmt, DEFAULT_IMAGE_TYPE[1])


def select_media(media: Mapping[str, bytes],
                 embed_target: Optional[str] = None,
                 embed_id: Optional[str] = None) -> Optional[Tuple[str, bytes]]:
    """从媒体表中挑选要输出的图片。

    1. 关系文件解析出的目标路径存在于媒体表中时直接使用，扩展名不在白名单内则返回 None；
    2. 否则只看白名单内的条目，优先取路径包含 embed id 的，再取第一个；
    3. 都没有时返回 None。
    """
    if embed_target and embed_target in media:
        if not is_allowed_media(embed_target):
            logger.debug(f'skipping unsupported media {embed_target}')
            return None
        return embed_target, media[embed_target]

    allowed = [(name, payload) for name, payload in media.items() if is_allowed_media(name)]
    if embed_id:
        for name, payload in allowed:
            if embed_id in name:
                return name, payload
    return allowed[0] if allowed else None


def is_allowed_media(name: str) -> bool:
    return name.lower().endswith(ALLOWED_MEDIA_EXTENSIONS)


def generate_image_name(data: bytes, mime_type: str, config: ConversionConfig,
                        namer: Optional[ImageNamer] = None) -> str:
    if config.naming_mode != NamingMode.AI or namer is None:
        return timestamp_name()
    try:
        return namer.generate_name(data, mime_type)
    except NamingError as e:
        logger.warning(f'AI image naming failed, falling back to timestamp name: {e}')
    except Exception as e:
        # 外部注入的命名器可能抛出任意异常，命名失败不能中断转换
        logger.warning(f'AI image naming failed, falling back to timestamp name: {str(e) or e.__class__.__name__}')
    return timestamp_name()


def next_unique_path(path: Path) -> Path:
    """若路径存在则自动追加 _1/_2...，避免覆盖。"""
    if not path.exists():
        return path

    stem = path.stem
    suffix = path.suffix
    parent = path.parent
    counter = 1
    while True:
        candidate = parent / f"{stem}_{counter}{suffix}"
        if not candidate.exists():
            return candidate
        counter += 1


def relocate_reference(image_path: Path, output_path: Optional[Path]) -> str:
    """把图片引用改写为相对于输出文件所在目录的路径；无法计算时只返回文件名。"""
    if output_path is None:
        return image_path.name
    output_dir = os.path.abspath(os.path.dirname(os.path.abspath(output_path)))
    image_abs = os.path.abspath(image_path)
    try:
        os.path.commonpath([output_dir, image_abs])
    except ValueError:
        # 不同盘符等情况
        return image_path.name
    return Path(os.path.relpath(image_abs, output_dir)).as_posix()


def resolve_image(data: bytes, config: ConversionConfig, namer: Optional[ImageNamer] = None) -> ImageReference:
    """为一张图片生成 ImageReference。

    未配置图片目录时以 base64 内嵌；否则写入图片目录并返回（相对）文件引用。
    只有写文件失败会抛出 ConversionIOError。
    """
    if not data:
        raise ValueError('image payload is empty')

    mime_type, extension = sniff_image_type(data)
    name = generate_image_name(data, mime_type, config, namer)

    if config.embeds_images:
        return ImageReference(
            generated_name=name,
            mime_type=mime_type,
            extension=extension,
            data_base64=base64.b64encode(data).decode('ascii'),
        )

    try:
        os.makedirs(config.image_dir, exist_ok=True)
        target = next_unique_path(Path(config.image_dir) / f'{name}.{extension}')
        with open(target, 'wb') as f:
            f.write(data)
    except OSError as e:
        raise ConversionIOError(f'failed to save image {name}.{extension} into {config.image_dir}: {e}') from e

    logger.debug(f'image saved to {target}')
    return ImageReference(
        generated_name=target.stem,
        mime_type=mime_type,
        extension=extension,
        saved_path=relocate_reference(target, config.output_path),
    )


def image_to_markdown(data: bytes, config: ConversionConfig, namer: Optional[ImageNamer] = None) -> str:
    """独立图片文件的转换入口。"""
    return resolve_image(data, config, namer).markdown + '\n'

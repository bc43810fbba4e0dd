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

"""图片命名：时间戳命名与 AI 命名服务。"""

import base64
import logging
import re
import time
from typing import Optional, Protocol

import requests

from markitup.errors import NamingError
from markitup.types import DEFAULT_AI_ENDPOINT, DEFAULT_AI_MODEL, ConversionConfig, NamingMode

logger = logging.getLogger(__name__)

_NAMING_PROMPT = ('Please analyze this image and generate a short, descriptive filename (without extension) '
                  'in English. The name should be concise and describe the main subject or content of the '
                  'image. Only return the filename, nothing else.')

_UNSAFE_NAME_CHARS = re.compile(r'[\s/\\:*?"<>|]+')
_MAX_NAME_LENGTH = 80


class ImageNamer(Protocol):

    def generate_name(self, image: bytes, mime_type: str) -> str:
        ...


def timestamp_name(now: Optional[float] = None) -> str:
    return f'pic-{int(time.time() if now is None else now)}'


def sanitize_name(raw: str) -> str:
    name = _UNSAFE_NAME_CHARS.sub('-', raw.strip())
    name = name.strip('-.')
    return name[:_MAX_NAME_LENGTH]


class DoubaoImageNamer:
    """通过 chat completions 接口为图片生成描述性文件名。

    任何网络、鉴权或响应格式问题都转换为 NamingError，由调用方回退到时间戳命名。
    """

    def __init__(self,
                 api_key: Optional[str],
                 endpoint: str = DEFAULT_AI_ENDPOINT,
                 model: str = DEFAULT_AI_MODEL,
                 timeout: float = 30.0,
                 session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.endpoint = endpoint
        self.model = model
        self.timeout = timeout
        self._session = session or requests.Session()

    @classmethod
    def from_config(cls, config: ConversionConfig, session: Optional[requests.Session] = None) -> 'DoubaoImageNamer':
        return cls(config.ai_api_key,
                   endpoint=config.ai_endpoint,
                   model=config.ai_model,
                   timeout=config.ai_timeout,
                   session=session)

    def _payload(self, image: bytes, mime_type: str) -> dict:
        encoded = base64.b64encode(image).decode('ascii')
        return {
            'model': self.model,
            'messages': [{
                'role': 'user',
                'content': [
                    {
                        'type': 'text',
                        'text': _NAMING_PROMPT
                    },
                    {
                        'type': 'image_url',
                        'image_url': {
                            'url': f'data:{mime_type};base64,{encoded}'
                        }
                    },
                ],
            }],
            'max_tokens': 50,
            'temperature': 0.7,
        }

    def generate_name(self, image: bytes, mime_type: str) -> str:
        if not self.api_key:
            raise NamingError('AI naming API key not configured')

        try:
            response = self._session.post(
                self.endpoint,
                json=self._payload(image, mime_type),
                headers={'Authorization': f'Bearer {self.api_key}'},
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as e:
            raise NamingError(f'naming request failed: {e}') from e

        try:
            content = body['choices'][0]['message']['content']
        except (KeyError, IndexError, TypeError) as e:
            raise NamingError(f'unexpected naming response: {e!r}') from e
        if not isinstance(content, str):
            raise NamingError('naming response content is not text')

        name = sanitize_name(content)
        if not name:
            raise NamingError('naming service returned an empty name')
        return name


def build_namer(config: ConversionConfig) -> Optional[ImageNamer]:
    if config.naming_mode == NamingMode.AI:
        return DoubaoImageNamer.from_config(config)
    return None

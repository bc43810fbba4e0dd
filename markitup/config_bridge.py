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

"""配置文件 / 环境变量 / 命令行参数与 ConversionConfig 之间的配置桥接。

优先级从低到高：TOML 配置文件 → `MARKITUP_` 环境变量 → 显式覆盖值。
"""

import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from markitup.errors import ConversionError
from markitup.image import next_unique_path
from markitup.types import ConversionConfig, NamingMode

logger = logging.getLogger(__name__)

ENV_PREFIX = 'MARKITUP_'

# 旧版配置键 -> ConversionConfig 字段
_KEY_ALIASES = {
    'image_path': 'image_dir',
    'doubao_api_key': 'ai_api_key',
    'api_key': 'ai_api_key',
    'model_path': 'speech_model',
}

# 这些键表示“是否启用 AI 命名”，按顺序取第一个存在的
_AI_FLAG_KEYS = ('ai_enable', 'is_ai_enpower')

_TRUE_VALUES = ('1', 'true', 'yes', 'on')
_FALSE_VALUES = ('0', 'false', 'no', 'off', '')


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConversionError(f'invalid boolean value: {value!r}', stage='config')


def _resolve_positive_bool(params: Mapping[str, Any], *keys: str) -> Optional[bool]:
    """按顺序读取第一个存在且非 None 的布尔键，都不存在时返回 None。"""
    for key in keys:
        if params.get(key) is not None:
            return _parse_bool(params[key])
    return None


def normalize_params(params: Mapping[str, Any]) -> Dict[str, Any]:
    """将别名键与 AI 开关归一化为 ConversionConfig 字段。"""
    normalized: Dict[str, Any] = {}
    for key, value in params.items():
        if value is None:
            continue
        key = key.lower().replace('-', '_')
        normalized[_KEY_ALIASES.get(key, key)] = value

    ai_enabled = _resolve_positive_bool(normalized, *_AI_FLAG_KEYS)
    for key in _AI_FLAG_KEYS:
        normalized.pop(key, None)
    if ai_enabled is not None and 'naming_mode' not in normalized:
        normalized['naming_mode'] = NamingMode.AI if ai_enabled else NamingMode.Timestamp

    known = set(ConversionConfig.model_fields)
    unknown = sorted(set(normalized) - known)
    if unknown:
        logger.debug(f'ignoring unknown configuration keys: {", ".join(unknown)}')
    return {key: value for key, value in normalized.items() if key in known}


def read_config_file(path: Path) -> Dict[str, Any]:
    try:
        with open(path, 'rb') as f:
            data = tomllib.load(f)
    except OSError as e:
        raise ConversionError(f'failed to read configuration file {path}: {e}', stage='config') from e
    except tomllib.TOMLDecodeError as e:
        raise ConversionError(f'invalid configuration file {path}: {e}', stage='config') from e
    # 允许把配置放在 [markitup] 表下
    section = data.get('markitup')
    if isinstance(section, dict):
        return section
    return data


def read_environment(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    environ = os.environ if environ is None else environ
    return {key[len(ENV_PREFIX):].lower(): value for key, value in environ.items() if key.startswith(ENV_PREFIX)}


def build_config(params: Mapping[str, Any]) -> ConversionConfig:
    """根据参数字典构建 ConversionConfig。"""
    try:
        return ConversionConfig(**normalize_params(params))
    except ValidationError as e:
        raise ConversionError(f'invalid configuration: {e}', stage='config') from e


def load_config(path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None,
                **overrides) -> ConversionConfig:
    """依次合并配置文件、环境变量与显式覆盖值。值为 None 的覆盖项被忽略。"""
    params: Dict[str, Any] = {}
    if path is not None:
        params.update(normalize_params(read_config_file(Path(path))))
    params.update(normalize_params(read_environment(environ)))
    params.update(normalize_params(overrides))
    return build_config(params)


def output_path_for(input_path: Path, output_dir: Path) -> Path:
    """批量转换时单个文件的输出路径：`<output_dir>/<stem>.md`，重名时追加数字后缀。"""
    return next_unique_path(Path(output_dir) / f'{Path(input_path).stem}.md')

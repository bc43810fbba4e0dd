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

import logging
import sys

from tqdm import tqdm

_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'


class TqdmLoggingHandler(logging.Handler):
    """通过 tqdm.write 输出日志，避免打断进度条。"""

    def emit(self, record):
        try:
            tqdm.write(self.format(record), file=sys.stderr)
        except Exception:
            self.handleError(record)


def setup_logging(level=logging.INFO, compat_tqdm=False):
    """配置根日志（仅供命令行入口调用，库代码不添加 handler）。"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = TqdmLoggingHandler() if compat_tqdm else logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

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

"""后台处理的转换工作线程。"""

import logging
import queue
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from markitup.config_bridge import output_path_for
from markitup.entry import convert_from_path, write_output
from markitup.errors import ConversionError
from markitup.naming import ImageNamer
from markitup.types import ConversionConfig

logger = logging.getLogger(__name__)


@dataclass
class ConversionResults:
    """批量转换操作的结果。"""

    success_count: int = 0
    failed_count: int = 0
    total_count: int = 0
    failed_files: List[Tuple[Path, str]] = field(default_factory=list)
    outputs: List[Path] = field(default_factory=list)


class QueueLogHandler(logging.Handler):
    """将日志记录放入队列的日志处理器。"""

    def __init__(self, log_queue: queue.Queue):
        super().__init__()
        self.log_queue = log_queue

    def emit(self, record):
        try:
            self.log_queue.put((record.levelname, self.format(record)))
        except Exception:
            self.handleError(record)


class ConversionWorker(threading.Thread):
    """文件转换的后台工作线程：逐个转换并把 (level, message) 消息放入队列。"""

    def __init__(
        self,
        files: List[Path],
        output_dir: Path,
        config: ConversionConfig,
        log_queue: queue.Queue,
        progress_callback: Optional[Callable[[float, str], None]] = None,
        cancel_event: Optional[threading.Event] = None,
        on_complete: Optional[Callable[[ConversionResults], None]] = None,
        namer: Optional[ImageNamer] = None,
        recognizer=None,
        forward_logs: bool = False,
    ):
        super().__init__(daemon=True)
        self.files = [Path(f) for f in files]
        self.output_dir = Path(output_dir)
        self.config = config
        self.log_queue = log_queue
        self.progress_callback = progress_callback
        self.cancel_event = cancel_event or threading.Event()
        self.on_complete = on_complete
        self.namer = namer
        self.recognizer = recognizer
        self.forward_logs = forward_logs
        self._results = ConversionResults(total_count=len(self.files))

    def run(self):
        """执行转换任务；forward_logs 为 True 时 markitup 日志也转发到队列。"""

        if not self.forward_logs:
            self._run()
            return

        package_logger = logging.getLogger('markitup')
        handler = QueueLogHandler(self.log_queue)
        handler.setLevel(logging.WARNING)
        package_logger.addHandler(handler)
        try:
            self._run()
        finally:
            package_logger.removeHandler(handler)

    def _run(self):
        total = len(self.files)
        if total == 0:
            if self.on_complete:
                self.on_complete(self._results)
            return

        self.log_queue.put(("INFO", f"开始转换任务，共 {total} 个文件"))

        cancelled = False
        for file_idx, file_path in enumerate(self.files):
            if self.cancel_event.is_set():
                cancelled = True
                break
            self.log_queue.put(("INFO", f"正在处理: {file_path.name}"))
            success, detail = self._convert_single_file(file_path)
            self._finalize_file_result(file_idx, file_path, success, detail)

        if cancelled:
            self.log_queue.put(("WARNING", "用户取消转换"))
        else:
            self.log_queue.put(("INFO", "═" * 40))
            self.log_queue.put((
                "INFO",
                f"转换完成！成功: {self._results.success_count}, "
                f"失败: {self._results.failed_count}, 总计: {self._results.total_count}",
            ))

        if self.on_complete:
            self.on_complete(self._results)

    def _config_for(self, output_path: Path) -> ConversionConfig:
        return self.config.model_copy(update={'output_path': output_path})

    def _convert_single_file(self, file_path: Path) -> Tuple[bool, str]:
        """返回 (True, 输出路径) 或 (False, 错误信息)。"""

        output_path = output_path_for(file_path, self.output_dir)
        try:
            markdown = convert_from_path(file_path,
                                         self._config_for(output_path),
                                         namer=self.namer,
                                         recognizer=self.recognizer)
            write_output(markdown, output_path)
        except ConversionError as exc:
            error_message = str(exc) or exc.__class__.__name__
            self.log_queue.put(("ERROR", f"{file_path.name} 转换失败: {error_message}"))
            return False, error_message
        except Exception as exc:
            logger.exception(f"unexpected error while converting {file_path}")
            error_message = str(exc) or exc.__class__.__name__
            self.log_queue.put(("ERROR", f"{file_path.name} 转换失败: {error_message}"))
            return False, error_message

        self._results.outputs.append(output_path)
        self.log_queue.put(("SUCCESS", f"{file_path.name} 转换完成 → {output_path.name}"))
        return True, str(output_path)

    def _finalize_file_result(self, file_idx: int, file_path: Path, success: bool, detail: str):
        if success:
            self._results.success_count += 1
        else:
            self._results.failed_count += 1
            self._results.failed_files.append((file_path, detail))

        done_count = self._results.success_count + self._results.failed_count
        if self.progress_callback:
            self.progress_callback((file_idx + 1) / len(self.files), f"已完成 {done_count}/{len(self.files)}")

    def get_results(self) -> ConversionResults:
        """获取转换结果。"""

        return self._results

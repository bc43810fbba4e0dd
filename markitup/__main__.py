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

import argparse
import logging
import queue
import sys
from pathlib import Path

from tqdm import tqdm

from markitup.config_bridge import load_config
from markitup.entry import convert_from_path, write_output
from markitup.errors import ConversionError, UnsupportedFormat
from markitup.log import setup_logging
from markitup.types import SlideOrder
from markitup.worker import ConversionWorker

logger = logging.getLogger(__name__)

_POLL_INTERVAL_SEC = 0.1


def parse_args(argv=None) -> argparse.Namespace:
    """解析命令行参数，返回原始 Namespace（不构建 config）。"""
    arg_parser = argparse.ArgumentParser(prog='markitup', description='Convert documents, slides, sheets, '
                                         'images, HTML and audio to markdown')
    arg_parser.add_argument('input', type=Path, nargs='+', help='path(s) of the file(s) to be converted')
    arg_parser.add_argument('-o',
                            '--output',
                            type=Path,
                            help='output file (single input) or output directory (several inputs)')
    arg_parser.add_argument('-i',
                            '--image-path',
                            type=Path,
                            help='where to put images extracted (embedded as base64 when omitted)')
    ai_group = arg_parser.add_mutually_exclusive_group()
    ai_group.add_argument('-a',
                          '--ai-enable',
                          dest='ai_enable',
                          action='store_const',
                          const=True,
                          default=None,
                          help='name extracted images with the AI naming service')
    ai_group.add_argument('--no-ai',
                          dest='ai_enable',
                          action='store_const',
                          const=False,
                          help='name extracted images with timestamps')
    arg_parser.add_argument('-c', '--config', type=Path, help='path to a TOML configuration file')
    arg_parser.add_argument('--slide-order',
                            choices=[order.value for order in SlideOrder],
                            default=None,
                            help='order slides by numeric suffix (default) or by archive order')
    arg_parser.add_argument('--strict-slides',
                            action='store_const',
                            const=True,
                            default=None,
                            help='fail the conversion when a slide cannot be parsed')
    arg_parser.add_argument(
        '--no-compress-blank-lines',
        dest='compress_blank_lines',
        action='store_const',
        const=False,
        default=None,
        help='do not compress consecutive blank lines in output',
    )
    arg_parser.add_argument('-v', '--verbose', action='store_true', help='show debug logs')
    return arg_parser.parse_args(argv)


def _build_config(args: argparse.Namespace, output_path=None):
    return load_config(
        args.config,
        image_path=args.image_path,
        output_path=output_path,
        ai_enable=args.ai_enable,
        slide_order=args.slide_order,
        strict_slides=args.strict_slides,
        compress_blank_lines=args.compress_blank_lines,
    )


def _convert_single(args: argparse.Namespace) -> int:
    config = _build_config(args, args.output)
    markdown = convert_from_path(args.input[0], config, disable_tqdm=args.output is None)
    if args.output is None:
        sys.stdout.write(markdown)
    else:
        write_output(markdown, args.output)
        print(f'Output written to: {args.output}')
    return 0


def _drain(log_queue: queue.Queue):
    while True:
        try:
            level, message = log_queue.get_nowait()
        except queue.Empty:
            return
        tqdm.write(f'[{level}] {message}', file=sys.stderr)


def _convert_batch(args: argparse.Namespace) -> int:
    output_dir = args.output or Path.cwd()
    if output_dir.exists() and not output_dir.is_dir():
        print(f'错误：多个输入时 --output 必须是目录：{output_dir}', file=sys.stderr)
        return 2
    config = _build_config(args)

    log_queue: queue.Queue = queue.Queue()
    with tqdm(total=len(args.input), desc='Converting files', unit='file') as bar:

        def progress_cb(fraction, status):
            bar.n = round(fraction * len(args.input))
            bar.set_postfix_str(status)

        worker = ConversionWorker(args.input, output_dir, config, log_queue, progress_callback=progress_cb)
        worker.start()
        while worker.is_alive():
            worker.join(_POLL_INTERVAL_SEC)
            _drain(log_queue)
        _drain(log_queue)

    results = worker.get_results()
    return 0 if results.failed_count == 0 else 1


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(level=logging.DEBUG if args.verbose else logging.INFO, compat_tqdm=True)

    try:
        if len(args.input) == 1:
            return _convert_single(args)
        return _convert_batch(args)
    except UnsupportedFormat as e:
        print(f'错误：{e}', file=sys.stderr)
        return 2
    except ConversionError as e:
        print(f'错误：{e}', file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())

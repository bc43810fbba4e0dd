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

"""音频转写。

WAV 用标准库 wave 解码；其他容器（mp3/ogg/flac/m4a）先经 pydub 转为 WAV。
语音识别默认使用 faster-whisper，二者都属于可选依赖 `markitup[audio]`。
"""

import io
import logging
import sys
import wave
from array import array
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from markitup.errors import TranscriptionError

logger = logging.getLogger(__name__)

WHISPER_SAMPLE_RATE = 16000
NO_CONTENT_TEXT = '[No valid content recognized]'

_TRANSCRIPT_TEMPLATE = ('# Audio Transcription\n\n'
                        '## Basic Information\n'
                        '- **Sample Rate**: {sample_rate} Hz\n'
                        '- **Recognition Engine**: {engine}\n\n'
                        '## Transcription\n'
                        '{text}\n')


@dataclass(frozen=True)
class WavAudio:
    pcm: bytes
    """单声道 16 位小端 PCM"""
    sample_rate: int
    channels: int
    """原始声道数"""


class SpeechRecognizer(Protocol):
    engine_name: str

    def transcribe(self, pcm: bytes, sample_rate: int) -> str:
        ...


def _samples_from_bytes(raw: bytes) -> array:
    samples = array('h')
    samples.frombytes(raw)
    if sys.byteorder == 'big':
        samples.byteswap()
    return samples


def _samples_to_bytes(samples: array) -> bytes:
    if sys.byteorder == 'big':
        samples = array('h', samples)
        samples.byteswap()
    return samples.tobytes()


def convert_to_mono(samples: Sequence[int], channels: int) -> array:
    """按帧对各声道取平均，下混为单声道；不完整的末帧被丢弃。"""
    if channels <= 1:
        return array('h', samples)
    mono = array('h')
    usable = len(samples) - len(samples) % channels
    for start in range(0, usable, channels):
        mono.append(int(sum(samples[start:start + channels]) / channels))
    return mono


def read_wav(data: bytes) -> WavAudio:
    try:
        with wave.open(io.BytesIO(data), 'rb') as reader:
            channels = reader.getnchannels()
            sample_width = reader.getsampwidth()
            sample_rate = reader.getframerate()
            frames = reader.readframes(reader.getnframes())
    except (wave.Error, EOFError) as e:
        raise TranscriptionError(f'Failed to read WAV stream: {e}') from e

    if sample_width != 2:
        raise TranscriptionError(f'16-bit depth required (depth: {sample_width * 8})')

    samples = _samples_from_bytes(frames)
    if channels > 1:
        samples = convert_to_mono(samples, channels)
    return WavAudio(pcm=_samples_to_bytes(samples), sample_rate=sample_rate, channels=channels)


def audio_to_wav(data: bytes) -> bytes:
    """将任意 ffmpeg 可解码的音频转为单声道 16 位 WAV。"""
    try:
        from pydub import AudioSegment
        from pydub.exceptions import CouldntDecodeError
    except ImportError as e:
        raise TranscriptionError('pydub is required to decode non-WAV audio (pip install markitup[audio])') from e

    try:
        segment = AudioSegment.from_file(io.BytesIO(data))
    except (CouldntDecodeError, OSError, IndexError) as e:
        raise TranscriptionError(f'Failed to decode audio stream: {e}') from e

    output = io.BytesIO()
    segment.set_channels(1).set_sample_width(2).export(output, format='wav')
    return output.getvalue()


class WhisperRecognizer:
    """faster-whisper 语音识别，模型在第一次转写时加载。"""

    def __init__(self, model_size: str = 'small', device: str = 'cpu', compute_type: str = 'int8',
                 beam_size: int = 5):
        self.model_size = model_size
        self.device = device
        self.compute_type = compute_type
        self.beam_size = beam_size
        self._model = None

    @property
    def engine_name(self) -> str:
        return f'faster-whisper (Model: {self.model_size})'

    def _get_model(self):
        if self._model is None:
            try:
                from faster_whisper import WhisperModel
            except ImportError as e:
                raise TranscriptionError(
                    'faster-whisper is required for speech recognition (pip install markitup[audio])') from e
            logger.info(f'loading whisper model {self.model_size} on {self.device}')
            self._model = WhisperModel(self.model_size, device=self.device, compute_type=self.compute_type)
        return self._model

    def transcribe(self, pcm: bytes, sample_rate: int) -> str:
        try:
            import numpy as np
        except ImportError as e:
            raise TranscriptionError('numpy is required for speech recognition (pip install markitup[audio])') from e

        audio = np.frombuffer(pcm, dtype='<i2').astype(np.float32) / 32768.0
        if sample_rate != WHISPER_SAMPLE_RATE and len(audio):
            duration = len(audio) / float(sample_rate)
            target_len = max(1, int(round(duration * WHISPER_SAMPLE_RATE)))
            audio = np.interp(
                np.linspace(0.0, duration, target_len, endpoint=False),
                np.arange(len(audio)) / float(sample_rate),
                audio,
            ).astype(np.float32)

        model = self._get_model()
        try:
            segments, _info = model.transcribe(audio, beam_size=self.beam_size, vad_filter=True)
            return ' '.join(seg.text.strip() for seg in segments if seg.text and seg.text.strip())
        except (RuntimeError, ValueError, OSError) as e:
            raise TranscriptionError(f'speech recognition failed: {e}') from e


def render_transcript(text: str, sample_rate: int, engine: str) -> str:
    return _TRANSCRIPT_TEMPLATE.format(sample_rate=sample_rate, engine=engine, text=text.strip() or NO_CONTENT_TEXT)


def wav_to_markdown(data: bytes, recognizer: SpeechRecognizer) -> str:
    audio = read_wav(data)
    logger.debug(f'transcribing {len(audio.pcm) // 2} samples at {audio.sample_rate} Hz')
    text = recognizer.transcribe(audio.pcm, audio.sample_rate)
    return render_transcript(text, audio.sample_rate, recognizer.engine_name)


def audio_to_markdown(data: bytes, recognizer: SpeechRecognizer, mime_type: Optional[str] = None) -> str:
    if mime_type not in ('audio/wav', 'audio/x-wav', 'audio/wave'):
        data = audio_to_wav(data)
    return wav_to_markdown(data, recognizer)

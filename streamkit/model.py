"""Data model shared by the manifest parsers, filters and downloader."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class MediaType(Enum):
    """Kind of media a stream carries."""

    VIDEO = "VIDEO"
    AUDIO = "AUDIO"
    SUBTITLES = "SUBTITLES"
    UNKNOWN = "UNKNOWN"


class EncryptMethod(Enum):
    """Encryption scheme of a segment."""

    NONE = "NONE"
    AES_128 = "AES_128"
    AES_CTR = "AES_CTR"
    SAMPLE_AES = "SAMPLE_AES"
    CENC = "CENC"
    UNKNOWN = "UNKNOWN"


class RoleType(Enum):
    """Role of a track as declared by the manifest."""

    SUBTITLE = "SUBTITLE"
    MAIN = "MAIN"
    ALTERNATE = "ALTERNATE"
    SUPPLEMENTARY = "SUPPLEMENTARY"
    COMMENTARY = "COMMENTARY"
    DUB = "DUB"


class Choice(Enum):
    """A yes/no attribute value."""

    YES = "YES"
    NO = "NO"


class ExtractorType(Enum):
    """Manifest format a stream came from."""

    HLS = "HLS"
    DASH = "DASH"
    MSS = "MSS"
    LIVE_TS = "LIVE_TS"


@dataclass(eq=False)
class EncryptInfo:
    """How a segment is encrypted and where its key comes from."""

    method: EncryptMethod = EncryptMethod.NONE
    key: Optional[bytes] = None
    iv: Optional[bytes] = None
    uri: str = ""


@dataclass(eq=False)
class MediaSegment:
    """One downloadable piece of a stream."""

    index: int = 0
    duration: float = 0.0
    url: str = ""
    start_range: Optional[int] = None
    expect_length: Optional[int] = None
    encrypt_info: EncryptInfo = field(default_factory=EncryptInfo)
    is_encrypted: bool = False
    date_time: Optional[datetime] = None
    name_from_var: str = ""


@dataclass(eq=False)
class MediaPart:
    """A run of segments without a discontinuity."""

    media_segments: list[MediaSegment] = field(default_factory=list)

    def add_segment(self, segment: MediaSegment) -> None:
        self.media_segments.append(segment)


@dataclass(eq=False)
class Playlist:
    """The segments of one stream, grouped into parts."""

    url: str = ""
    is_live: bool = False
    refresh_interval_ms: float = 15000.0
    target_duration: Optional[float] = None
    media_init: Optional[MediaSegment] = None
    media_parts: list[MediaPart] = field(default_factory=list)
    total_bytes: int = 0

    def add_media_part(self, part: MediaPart) -> None:
        self.media_parts.append(part)

    def total_duration(self) -> float:
        """Sum of the durations of all segments, in seconds."""
        return sum(segment.duration for segment in self.all_segments())

    def all_segments(self) -> list[MediaSegment]:
        """All segments of all parts, in order."""
        return [segment for part in self.media_parts for segment in part.media_segments]


def _format_float(value: float) -> str:
    text = repr(float(value))
    return text[:-2] if text.endswith(".0") else text


@dataclass(eq=False)
class StreamSpec:
    """Description of one selectable stream of a manifest."""

    media_type: Optional[MediaType] = None
    group_id: str = ""
    language: str = ""
    name: str = ""
    default: Optional[Choice] = None
    skipped_duration: Optional[float] = None
    bandwidth: Optional[int] = None
    codecs: str = ""
    resolution: str = ""
    frame_rate: Optional[float] = None
    channels: str = ""
    extension: str = ""
    role: Optional[RoleType] = None
    video_range: str = ""
    video_id: str = ""
    audio_id: str = ""
    subtitle_id: str = ""
    period_id: str = ""
    url: str = ""
    original_url: str = ""
    playlist: Optional[Playlist] = None
    publish_time: Optional[datetime] = None
    need_ttml_conversion: bool = False
    extractor_type: Optional[ExtractorType] = None

    def segments_count(self) -> int:
        """Number of segments in every part of the playlist."""
        if self.playlist is None:
            return 0
        return len(self.playlist.all_segments())

    def _bandwidth_text(self) -> str:
        return f"{self.bandwidth // 1000} Kbps" if self.bandwidth else ""

    def _description_fields(self) -> tuple[str, list[str]]:
        role = self.role.value if self.role is not None else ""
        if self.media_type == MediaType.AUDIO:
            return "Aud", [
                self.group_id,
                self._bandwidth_text(),
                self.name,
                self.codecs,
                self.language,
                f"{self.channels}CH" if self.channels else "",
                role,
            ]
        if self.media_type == MediaType.SUBTITLES:
            return "Sub", [self.group_id, self.language, self.name, self.codecs, role]
        frame_rate = _format_float(self.frame_rate) if self.frame_rate else ""
        return "Vid", [
            self.resolution,
            self._bandwidth_text(),
            self.group_id,
            frame_rate,
            self.codecs,
            self.video_range,
            role,
        ]

    def short_description(self) -> str:
        """One-line summary of the stream's main attributes."""
        prefix, parts = self._description_fields()
        return " | ".join([prefix, *(part for part in parts if part)])

    def __str__(self) -> str:
        text = self.short_description()
        if self.playlist is not None:
            segments = self.segments_count()
            text += f" | {segments} Segments"
            if len(self.playlist.media_parts) > 1:
                text += f" | {len(self.playlist.media_parts)} Parts"
            duration = self.playlist.total_duration()
            if duration > 0:
                text += f" | ~{_format_float(round(duration, 2))}s"
            if self.playlist.is_live:
                text += " | Live"
        return text


@dataclass
class StreamFilter:
    """Criteria for keeping or dropping streams."""

    group_id_reg: Optional[re.Pattern] = None
    language_reg: Optional[re.Pattern] = None
    name_reg: Optional[re.Pattern] = None
    codecs_reg: Optional[re.Pattern] = None
    resolution_reg: Optional[re.Pattern] = None
    frame_rate_reg: Optional[re.Pattern] = None
    channels_reg: Optional[re.Pattern] = None
    video_range_reg: Optional[re.Pattern] = None
    url_reg: Optional[re.Pattern] = None
    segments_min_count: Optional[int] = None
    segments_max_count: Optional[int] = None
    playlist_min_dur: Optional[float] = None
    playlist_max_dur: Optional[float] = None
    bandwidth_min: Optional[int] = None
    bandwidth_max: Optional[int] = None
    role: Optional[RoleType] = None
    selection: str = "best"


@dataclass
class CustomRange:
    """A user-chosen subrange of segments, by index or by time."""

    input_str: str = ""
    start_sec: Optional[float] = None
    end_sec: Optional[float] = None
    start_seg_index: Optional[int] = None
    end_seg_index: Optional[int] = None
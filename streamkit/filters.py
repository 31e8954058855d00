"""Keeping, dropping, syncing and trimming selected streams."""

from __future__ import annotations

import logging
import math
import re
from decimal import Decimal
from typing import Iterable, Optional

from .model import CustomRange, MediaSegment, MediaType, StreamFilter, StreamSpec

logger = logging.getLogger(__name__)

_INT = re.compile(r"[+-]?[0-9]+")
_DEFAULT_TAKE_LAST = 15
_MEDIA_TYPE_ORDER = {
    MediaType.VIDEO: 0,
    MediaType.AUDIO: 1,
    MediaType.SUBTITLES: 2,
}


def _format_g(value: float) -> str:
    """Shortest decimal text of a float, switching to exponent form like '%g'."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"
    sign = "-" if value < 0 else ""
    number = Decimal(repr(abs(value))).normalize()
    exponent = number.adjusted()
    if exponent < -4 or exponent >= 6:
        digits = "".join(str(d) for d in number.as_tuple().digits).rstrip("0") or "0"
        mantissa = digits[0] + ("." + digits[1:] if len(digits) > 1 else "")
        exp_sign = "-" if exponent < 0 else "+"
        return f"{sign}{mantissa}e{exp_sign}{abs(exponent):02d}"
    return sign + format(number, "f")


def _regex_miss(pattern: Optional[re.Pattern], text: str) -> bool:
    return pattern is not None and (not text or pattern.search(text) is None)


def _matches(stream: StreamSpec, stream_filter: StreamFilter, count_filter_active: bool) -> bool:
    text_checks = (
        (stream_filter.group_id_reg, stream.group_id),
        (stream_filter.language_reg, stream.language),
        (stream_filter.name_reg, stream.name),
        (stream_filter.codecs_reg, stream.codecs),
        (stream_filter.resolution_reg, stream.resolution),
        (stream_filter.channels_reg, stream.channels),
        (stream_filter.video_range_reg, stream.video_range),
        (stream_filter.url_reg, stream.url),
    )
    if any(_regex_miss(pattern, text) for pattern, text in text_checks):
        return False

    if stream_filter.frame_rate_reg is not None and (
        stream.frame_rate is None
        or stream_filter.frame_rate_reg.search(_format_g(stream.frame_rate)) is None
    ):
        return False

    segments = stream.segments_count()
    if count_filter_active:
        if stream_filter.segments_max_count is not None and segments > stream_filter.segments_max_count:
            return False
        if stream_filter.segments_min_count is not None and segments < stream_filter.segments_min_count:
            return False

    if stream.playlist is not None:
        duration = stream.playlist.total_duration()
        if stream_filter.playlist_min_dur is not None and duration <= stream_filter.playlist_min_dur:
            return False
        if stream_filter.playlist_max_dur is not None and duration >= stream_filter.playlist_max_dur:
            return False

    if stream.bandwidth is not None:
        if stream_filter.bandwidth_min is not None and stream.bandwidth < stream_filter.bandwidth_min:
            return False
        if stream_filter.bandwidth_max is not None and stream.bandwidth > stream_filter.bandwidth_max:
            return False

    if stream_filter.role is not None and stream.role != stream_filter.role:
        return False
    return True


def _count(text: str) -> Optional[int]:
    if not _INT.fullmatch(text):
        return None
    number = int(text)
    if number < 0:
        raise ValueError(f"negative stream count in selection {text!r}")
    return number


def do_filter_keep(
    streams: list[StreamSpec], stream_filter: Optional[StreamFilter]
) -> list[StreamSpec]:
    """Streams matching every criterion, narrowed by the filter's best/worst selection."""
    if stream_filter is None:
        return []

    count_filter_active = any(s.segments_count() > 0 for s in streams)
    result = [s for s in streams if _matches(s, stream_filter, count_filter_active)]
    if not result:
        return result

    selection = stream_filter.selection
    if selection == "best":
        return result[:1]
    if selection == "worst":
        return result[-1:]
    best_number = _count(selection.replace("best", ""))
    if best_number is not None:
        return result[:best_number]
    worst_number = _count(selection.replace("worst", ""))
    if worst_number is not None:
        return result[len(result) - worst_number :] if len(result) > worst_number else result
    return result


def do_filter_drop(
    streams: list[StreamSpec], stream_filter: Optional[StreamFilter]
) -> list[StreamSpec]:
    """Streams not selected by the filter; streams are told apart by their description."""
    if stream_filter is None:
        return streams
    selected = {str(s) for s in do_filter_keep(streams, stream_filter)}
    return [s for s in streams if str(s) not in selected]


def _first_part_segments(stream: StreamSpec) -> Optional[list[MediaSegment]]:
    if stream.playlist is None or not stream.playlist.media_parts:
        return None
    return stream.playlist.media_parts[0].media_segments


def _keep_segments(streams: Iterable[StreamSpec], keep) -> None:
    for stream in streams:
        if stream.playlist is None:
            continue
        for part in stream.playlist.media_parts:
            part.media_segments = [seg for seg in part.media_segments if keep(seg)]


def sync_streams(streams: list[StreamSpec], take_last_count: int = 0) -> None:
    """Align live streams on a common start, then keep only their latest segments."""
    if not streams:
        return
    if take_last_count == 0:
        take_last_count = _DEFAULT_TAKE_LAST

    first_parts = [segs for segs in map(_first_part_segments, streams) if segs is not None]
    all_dated = all(seg.date_time is not None for segs in first_parts for seg in segs)

    if all_dated:
        starts = [min(seg.date_time for seg in segs) for segs in first_parts if segs]
        if starts:
            threshold = math.floor(max(starts).timestamp())
            _keep_segments(
                streams,
                lambda seg: seg.date_time is not None
                and math.floor(seg.date_time.timestamp()) >= threshold,
            )
    else:
        max_min_index = -1
        for segs in first_parts:
            min_index = -1
            for seg in segs:
                if min_index == -1 or seg.index < min_index:
                    min_index = seg.index
            if min_index != -1 and min_index > max_min_index:
                max_min_index = min_index
        if max_min_index != -1:
            _keep_segments(streams, lambda seg: seg.index >= max_min_index)

    first_parts = [segs for segs in map(_first_part_segments, streams) if segs is not None]
    if not any(len(segs) > take_last_count for segs in first_parts):
        return
    skip = max(min(len(segs) for segs in first_parts) - take_last_count + 1, 0)
    for stream in streams:
        if stream.playlist is None:
            continue
        for part in stream.playlist.media_parts:
            if len(part.media_segments) > skip:
                part.media_segments = part.media_segments[skip:]


def apply_custom_range(streams: list[StreamSpec], custom_range: Optional[CustomRange]) -> None:
    """Keep only the segments inside a range given by segment index or by seconds.

    Raises ValueError when the range gives neither a full index nor a full time span.
    """
    if custom_range is None:
        return
    logger.info("custom range: %s", custom_range.input_str)
    logger.warning("a custom range may put audio and video out of sync")

    by_index = custom_range.start_seg_index is not None and custom_range.end_seg_index is not None
    by_time = custom_range.start_sec is not None and custom_range.end_sec is not None
    if not by_index and not by_time:
        raise ValueError(f"invalid custom range: {custom_range.input_str!r}")

    for stream in streams:
        if stream.playlist is None:
            continue
        skipped = 0.0
        for part in stream.playlist.media_parts:
            if by_index:
                kept = [
                    seg
                    for seg in part.media_segments
                    if custom_range.start_seg_index <= seg.index <= custom_range.end_seg_index
                ]
            else:
                kept = []
                elapsed = 0.0
                for seg in part.media_segments:
                    if custom_range.start_sec <= elapsed <= custom_range.end_sec:
                        kept.append(seg)
                    elapsed += seg.duration

            if kept:
                first_index = kept[0].index
                for seg in part.media_segments:
                    if seg.index >= first_index:
                        break
                    skipped += seg.duration
            part.media_segments = kept
        stream.skipped_duration = skipped


def clean_ad(streams: list[StreamSpec], keywords: list[str]) -> None:
    """Remove segments whose URL matches any keyword pattern, then drop empty parts."""
    if not keywords:
        return

    patterns = []
    for keyword in keywords:
        try:
            patterns.append(re.compile(keyword))
        except re.error:
            continue
        logger.info("ad filter keyword: %s", keyword)

    def is_ad(segment: MediaSegment) -> bool:
        return any(pattern.search(segment.url) for pattern in patterns)

    for stream in streams:
        if stream.playlist is None:
            continue
        before = stream.segments_count()
        for part in stream.playlist.media_parts:
            if any(is_ad(seg) for seg in part.media_segments):
                part.media_segments = [seg for seg in part.media_segments if not is_ad(seg)]
        stream.playlist.media_parts = [p for p in stream.playlist.media_parts if p.media_segments]
        after = stream.segments_count()
        if before != after:
            logger.warning("segment count changed: %d => %d", before, after)


def _channel_order(stream: StreamSpec) -> int:
    if not stream.channels:
        return 0
    head = stream.channels.split("/")[0]
    return int(head) if _INT.fullmatch(head) else 0


def sort_streams(streams: list[StreamSpec]) -> list[StreamSpec]:
    """A new list ordered by media type, then bandwidth and channel count descending."""

    def key(stream: StreamSpec) -> tuple[int, int, int]:
        type_order = _MEDIA_TYPE_ORDER.get(stream.media_type, 0) if stream.media_type else 0
        return (type_order, -(stream.bandwidth or 0), -_channel_order(stream))

    return sorted(streams, key=key)
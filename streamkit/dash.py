"""Turn an MPD manifest into stream descriptions."""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional

from .model import (
    EncryptMethod,
    MediaPart,
    MediaSegment,
    MediaType,
    Playlist,
    RoleType,
    StreamSpec,
)
from .mpd import (
    AdaptationSet,
    Mpd,
    Period,
    Representation,
    SegmentBase,
    SegmentList,
    SegmentTemplate,
    combine_url,
    filter_language,
    merge_segment_templates,
    parse_frame_rate,
    parse_iso8601_duration,
    parse_mpd,
    parse_range,
    parse_role,
    replace_vars,
)

logger = logging.getLogger(__name__)

_INT = re.compile(r"[+-]?[0-9]+")
_RFC3339 = re.compile(
    r"(\d{4}-\d{2}-\d{2})[Tt](\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})"
)
_MEDIA_TYPES = {
    "text": MediaType.SUBTITLES,
    "audio": MediaType.AUDIO,
    "video": MediaType.VIDEO,
}


def _to_int(text: str, default: int) -> int:
    return int(text) if _INT.fullmatch(text) else default


def _divide(numerator: float, denominator: float) -> float:
    if denominator:
        return numerator / denominator
    if numerator == 0:
        return math.nan
    return math.copysign(math.inf, numerator)


def _parse_rfc3339(text: str) -> Optional[datetime]:
    match = _RFC3339.fullmatch(text)
    if match is None:
        return None
    day, clock, fraction, zone = match.groups()
    micros = (fraction or "")[:6].ljust(6, "0")
    if zone in ("Z", "z"):
        zone = "+00:00"
    try:
        return datetime.fromisoformat(f"{day}T{clock}.{micros}{zone}")
    except ValueError:
        return None


def _duration(text: str) -> Optional[timedelta]:
    try:
        return parse_iso8601_duration(text)
    except ValueError:
        return None


def _fix_kkbox(base_url: str) -> str:
    if "kkbox.com.tw/" in base_url:
        return base_url.replace("//https:%2F%2F", "//")
    return base_url


def _extend_base_url(base_url: str, original: str) -> str:
    if base_url:
        return combine_url(original, _fix_kkbox(base_url))
    return original


def _presentation_seconds(period: Period, mpd: Mpd) -> float:
    text = period.duration or mpd.media_presentation_duration
    if not text:
        return 0.0
    duration = _duration(text)
    return duration.total_seconds() if duration is not None else 0.0


def _best_by_bandwidth(streams: list[StreamSpec]) -> StreamSpec:
    best = streams[0]
    for stream in streams[1:]:
        if (
            stream.bandwidth is not None
            and best.bandwidth is not None
            and stream.bandwidth > best.bandwidth
        ):
            best = stream
    return best


def _set_default_track_associations(streams: list[StreamSpec]) -> None:
    audio = [s for s in streams if s.media_type == MediaType.AUDIO]
    subtitles = [s for s in streams if s.media_type == MediaType.SUBTITLES]
    for stream in streams:
        if not stream.resolution:
            continue
        if audio:
            stream.audio_id = _best_by_bandwidth(audio).group_id
        if subtitles:
            stream.subtitle_id = _best_by_bandwidth(subtitles).group_id


def _init_segment(url: str, byte_range: str = "") -> MediaSegment:
    segment = MediaSegment(index=-1, url=url)
    if byte_range:
        segment.start_range, segment.expect_length = parse_range(byte_range)
    return segment


class DashParser:
    """Parser for DASH manifests fetched from ``mpd_url``."""

    def __init__(self, mpd_url: str):
        self.mpd_url = mpd_url
        self.base_url = mpd_url
        self.mpd_content = ""

    def parse(self, content: str) -> list[StreamSpec]:
        """Return one stream per usable Representation; raise ValueError on bad XML."""
        self.mpd_content = content
        mpd = parse_mpd(content)
        logger.debug("parsing MPD: type=%s, periods=%d", mpd.type, len(mpd.periods))
        is_live = mpd.type == "dynamic"

        if mpd.base_url:
            self.base_url = combine_url(self.mpd_url, _fix_kkbox(mpd.base_url))

        streams: list[StreamSpec] = []
        for period in mpd.periods:
            streams.extend(self._parse_period(period, mpd, is_live))

        _set_default_track_associations(streams)
        return streams

    def _parse_period(self, period: Period, mpd: Mpd, is_live: bool) -> list[StreamSpec]:
        period_base = _extend_base_url(period.base_url, self.base_url)
        streams = []
        for adaptation_set in period.adaptation_sets:
            adaptation_base = _extend_base_url(adaptation_set.base_url, period_base)
            mime_type = adaptation_set.content_type or adaptation_set.mime_type
            for representation in adaptation_set.representations:
                try:
                    stream = self._parse_representation(
                        representation,
                        adaptation_set,
                        period,
                        mpd,
                        adaptation_base,
                        mime_type,
                        is_live,
                    )
                except ValueError as exc:
                    logger.warning("skipping representation %r: %s", representation.id, exc)
                    continue
                streams.append(stream)
        return streams

    def _parse_representation(
        self,
        representation: Representation,
        adaptation_set: AdaptationSet,
        period: Period,
        mpd: Mpd,
        base_url: str,
        mime_type: str,
        is_live: bool,
    ) -> StreamSpec:
        representation_base = _extend_base_url(representation.base_url, base_url)

        stream = StreamSpec(
            original_url=self.mpd_url,
            period_id=period.id,
            group_id=representation.id,
            url=self.mpd_url,
            playlist=Playlist(media_parts=[MediaPart()], is_live=is_live),
        )
        playlist = stream.playlist

        if representation.bandwidth > 0:
            stream.bandwidth = representation.bandwidth

        mime_type = mime_type or representation.mime_type or adaptation_set.mime_type
        if mime_type:
            parts = mime_type.split("/")
            if len(parts) >= 2:
                stream.media_type = _MEDIA_TYPES.get(parts[0], MediaType.UNKNOWN)
                stream.extension = parts[1]

        stream.codecs = representation.codecs or adaptation_set.codecs
        stream.language = filter_language(representation.lang) or filter_language(
            adaptation_set.lang
        )

        if representation.width > 0 and representation.height > 0:
            stream.resolution = f"{representation.width}x{representation.height}"

        frame_rate_text = representation.frame_rate or adaptation_set.frame_rate
        if frame_rate_text:
            frame_rate = parse_frame_rate(frame_rate_text)
            if frame_rate > 0:
                stream.frame_rate = frame_rate

        channels = representation.audio_channels or adaptation_set.audio_channels
        if channels:
            stream.channels = channels

        role = representation.role or adaptation_set.role
        if role:
            stream.role = parse_role(role)
            if stream.role == RoleType.SUBTITLE:
                stream.media_type = MediaType.SUBTITLES
                if mime_type and "ttml" in mime_type:
                    stream.extension = "ttml"

        if stream.codecs in ("stpp", "wvtt"):
            stream.media_type = MediaType.SUBTITLES
            if stream.codecs == "stpp" and stream.extension == "m4s":
                stream.extension = "ttml"
                stream.need_ttml_conversion = True

        if representation.volume_adjust:
            stream.group_id += "-" + representation.volume_adjust

        if is_live and mpd.time_shift_buffer_depth:
            depth = _duration(mpd.time_shift_buffer_depth)
            if depth is not None:
                playlist.refresh_interval_ms = (depth // timedelta(milliseconds=1)) / 2

        if mpd.publish_time:
            published = _parse_rfc3339(mpd.publish_time)
            if published is not None:
                stream.publish_time = published

        self._parse_segments(
            stream, representation, adaptation_set, period, mpd, representation_base, is_live
        )

        if playlist.total_bytes == 0 and stream.bandwidth:
            total_duration = playlist.total_duration()
            if total_duration > 0:
                playlist.total_bytes = int(stream.bandwidth / 8.0 * total_duration)

        if representation.content_protection or adaptation_set.content_protection:
            if playlist.media_init is not None:
                playlist.media_init.encrypt_info.method = EncryptMethod.CENC
            for segment in playlist.all_segments():
                segment.encrypt_info.method = EncryptMethod.CENC

        if stream.media_type == MediaType.SUBTITLES and stream.extension == "mp4":
            stream.extension = "m4s"
        if (
            stream.media_type is not None
            and stream.media_type != MediaType.SUBTITLES
            and (not stream.extension or len(playlist.media_parts[0].media_segments) > 1)
        ):
            stream.extension = "m4s"

        return stream

    def _parse_segments(
        self,
        stream: StreamSpec,
        representation: Representation,
        adaptation_set: AdaptationSet,
        period: Period,
        mpd: Mpd,
        base_url: str,
        is_live: bool,
    ) -> None:
        if representation.segment_base.initialization.source_url:
            self._parse_segment_base(stream, representation.segment_base, base_url)
            return

        if representation.segment_list.segment_urls:
            self._parse_segment_list(stream, representation.segment_list, base_url)
            return

        template = representation.segment_template
        if not template.media:
            template = adaptation_set.segment_template
        if template.media:
            self._parse_segment_template(
                stream,
                template,
                adaptation_set.segment_template,
                representation,
                period,
                mpd,
                base_url,
                is_live,
            )
            return

        segments = stream.playlist.media_parts[0].media_segments
        if not segments:
            segments.append(
                MediaSegment(
                    index=0, url=base_url, duration=_presentation_seconds(period, mpd)
                )
            )

    def _parse_segment_base(
        self, stream: StreamSpec, segment_base: SegmentBase, base_url: str
    ) -> None:
        initialization = segment_base.initialization
        stream.playlist.media_init = _init_segment(
            combine_url(base_url, initialization.source_url), initialization.byte_range
        )

    def _parse_segment_list(
        self, stream: StreamSpec, segment_list: SegmentList, base_url: str
    ) -> None:
        playlist = stream.playlist
        initialization = segment_list.initialization
        if initialization.source_url:
            playlist.media_init = _init_segment(
                combine_url(base_url, initialization.source_url), initialization.byte_range
            )

        timescale = _to_int(segment_list.timescale, 1)
        duration = _to_int(segment_list.duration, 0)
        total_bytes = 0
        segments = playlist.media_parts[0].media_segments
        for index, segment_url in enumerate(segment_list.segment_urls):
            segment = MediaSegment(
                index=index,
                url=combine_url(base_url, segment_url.media),
                duration=_divide(duration, timescale),
            )
            if segment_url.media_range:
                segment.start_range, segment.expect_length = parse_range(
                    segment_url.media_range
                )
                total_bytes += segment.expect_length
            segments.append(segment)
        playlist.total_bytes = total_bytes

    def _parse_segment_template(
        self,
        stream: StreamSpec,
        inner: SegmentTemplate,
        outer: SegmentTemplate,
        representation: Representation,
        period: Period,
        mpd: Mpd,
        base_url: str,
        is_live: bool,
    ) -> None:
        template = merge_segment_templates(inner, outer)
        variables = {
            "$RepresentationID$": representation.id,
            "$Bandwidth$": str(representation.bandwidth),
        }

        if template.initialization:
            init_url = combine_url(base_url, replace_vars(template.initialization, variables))
            stream.playlist.media_init = _init_segment(init_url)

        if template.media:
            self._parse_template_media(
                stream, template, variables, period, mpd, base_url, is_live
            )

    def _parse_template_media(
        self,
        stream: StreamSpec,
        template: SegmentTemplate,
        variables: Mapping[str, str],
        period: Period,
        mpd: Mpd,
        base_url: str,
        is_live: bool,
    ) -> None:
        timescale = _to_int(template.timescale, 1)
        start_number = _to_int(template.start_number, 1)

        if template.timeline:
            self._parse_timeline(stream, template, variables, base_url, timescale, start_number)
            return

        duration = _to_int(template.duration, 0)
        if duration == 0:
            raise ValueError("segment duration is 0, cannot work out the segment count")

        total_duration = _presentation_seconds(period, mpd)
        total_number = 0
        if total_duration > 0:
            total_number = math.ceil(total_duration * timescale / duration)

        if total_number == 0 and is_live:
            if mpd.availability_start_time and mpd.time_shift_buffer_depth:
                available = _parse_rfc3339(mpd.availability_start_time)
                depth = _duration(mpd.time_shift_buffer_depth)
                if available is not None and depth is not None:
                    elapsed = (datetime.now(timezone.utc) - available).total_seconds()
                    depth_seconds = depth.total_seconds()
                    start_number += int((elapsed - depth_seconds) * timescale / duration)
                    total_number = int(depth_seconds * timescale / duration)

        segments = stream.playlist.media_parts[0].media_segments
        for offset in range(total_number):
            number = start_number + offset
            segment_vars = {**variables, "$Number$": str(number)}
            segments.append(
                MediaSegment(
                    index=number if is_live else offset,
                    url=combine_url(base_url, replace_vars(template.media, segment_vars)),
                    duration=_divide(duration, timescale),
                    name_from_var=str(number),
                )
            )

    def _parse_timeline(
        self,
        stream: StreamSpec,
        template: SegmentTemplate,
        variables: Mapping[str, str],
        base_url: str,
        timescale: int,
        start_number: int,
    ) -> None:
        has_time = "$Time$" in template.media
        segments = stream.playlist.media_parts[0].media_segments
        current_time = 0
        segment_number = start_number

        for entry in template.timeline:
            if _INT.fullmatch(entry.t):
                current_time = int(entry.t)
            duration = _to_int(entry.d, 0)
            repeat = _to_int(entry.r, 0)

            for step in range(max(repeat, 0) + 1):
                if step:
                    current_time += duration
                segment_vars = {
                    **variables,
                    "$Time$": str(current_time),
                    "$Number$": str(segment_number),
                }
                segments.append(
                    MediaSegment(
                        index=len(segments),
                        url=combine_url(base_url, replace_vars(template.media, segment_vars)),
                        duration=_divide(duration, timescale),
                        name_from_var=str(current_time) if has_time else "",
                    )
                )
                segment_number += 1

            current_time += duration
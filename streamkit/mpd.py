"""MPD document model and the helpers the DASH parser builds on."""

from __future__ import annotations

import logging
import math
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Iterable, Mapping, Optional
from urllib.parse import urljoin, urlparse

from .model import RoleType

logger = logging.getLogger(__name__)

_INT = re.compile(r"[+-]?[0-9]+")
_LANGUAGE = re.compile(r"[\w_\-\d]+", re.ASCII)
_NUMBER_FORMAT = re.compile(r"\$Number%([^$]+)d\$")
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")
_CONTROL = re.compile(r"[\x00-\x1f\x7f]")

_ROLES = {
    "subtitle": RoleType.SUBTITLE,
    "main": RoleType.MAIN,
    "alternate": RoleType.ALTERNATE,
    "supplementary": RoleType.SUPPLEMENTARY,
    "commentary": RoleType.COMMENTARY,
    "dub": RoleType.DUB,
}


@dataclass
class Initialization:
    """Where the initialization data of a representation lives."""

    source_url: str = ""
    byte_range: str = ""


@dataclass
class SegmentUrl:
    """One entry of a SegmentList."""

    media: str = ""
    media_range: str = ""


@dataclass
class SegmentBase:
    initialization: Initialization = field(default_factory=Initialization)


@dataclass
class SegmentList:
    duration: str = ""
    timescale: str = ""
    initialization: Initialization = field(default_factory=Initialization)
    segment_urls: list[SegmentUrl] = field(default_factory=list)


@dataclass
class SegmentTimelineEntry:
    """An S element: start time, duration and repeat count, as written."""

    t: str = ""
    d: str = ""
    r: str = ""


@dataclass
class SegmentTemplate:
    initialization: str = ""
    media: str = ""
    duration: str = ""
    start_number: str = ""
    timescale: str = ""
    presentation_time_offset: str = ""
    timeline: list[SegmentTimelineEntry] = field(default_factory=list)


@dataclass
class Representation:
    id: str = ""
    bandwidth: int = 0
    width: int = 0
    height: int = 0
    frame_rate: str = ""
    codecs: str = ""
    mime_type: str = ""
    lang: str = ""
    volume_adjust: str = ""
    base_url: str = ""
    role: str = ""
    segment_base: SegmentBase = field(default_factory=SegmentBase)
    segment_list: SegmentList = field(default_factory=SegmentList)
    segment_template: SegmentTemplate = field(default_factory=SegmentTemplate)
    audio_channels: str = ""
    content_protection: list[str] = field(default_factory=list)


@dataclass
class AdaptationSet:
    content_type: str = ""
    mime_type: str = ""
    frame_rate: str = ""
    lang: str = ""
    codecs: str = ""
    base_url: str = ""
    role: str = ""
    representations: list[Representation] = field(default_factory=list)
    segment_template: SegmentTemplate = field(default_factory=SegmentTemplate)
    audio_channels: str = ""
    content_protection: list[str] = field(default_factory=list)


@dataclass
class Period:
    id: str = ""
    duration: str = ""
    base_url: str = ""
    adaptation_sets: list[AdaptationSet] = field(default_factory=list)


@dataclass
class Mpd:
    type: str = ""
    max_segment_duration: str = ""
    availability_start_time: str = ""
    time_shift_buffer_depth: str = ""
    publish_time: str = ""
    media_presentation_duration: str = ""
    base_url: str = ""
    periods: list[Period] = field(default_factory=list)


def _local(name: str) -> str:
    return name.rsplit("}", 1)[-1]


@dataclass
class _Node:
    """Attributes and children of one or more same-named elements, merged."""

    attrs: dict[str, str] = field(default_factory=dict)
    children: list[ET.Element] = field(default_factory=list)

    @classmethod
    def merge(cls, elements: Iterable[ET.Element]) -> "_Node":
        node = cls()
        for element in elements:
            node.attrs.update({_local(key): value for key, value in element.attrib.items()})
            node.children.extend(element)
        return node

    def attr(self, name: str) -> str:
        return self.attrs.get(name, "")

    def attr_int(self, name: str) -> int:
        text = self.attrs.get(name, "").strip()
        if not text:
            return 0
        if not _INT.fullmatch(text):
            raise ValueError(f"invalid integer attribute {name}={text!r}")
        return int(text)

    def elements(self, name: str) -> list[ET.Element]:
        return [child for child in self.children if _local(child.tag) == name]

    def child(self, name: str) -> "_Node":
        return _Node.merge(self.elements(name))

    def text(self, name: str) -> str:
        found = self.elements(name)
        if not found:
            return ""
        element = found[-1]
        return (element.text or "") + "".join(child.tail or "" for child in element)


def _initialization(node: _Node) -> Initialization:
    return Initialization(node.attr("sourceURL"), node.attr("range"))


def _segment_template(node: _Node) -> SegmentTemplate:
    timeline = [
        SegmentTimelineEntry(s.attr("t"), s.attr("d"), s.attr("r"))
        for s in (_Node.merge([e]) for e in node.child("SegmentTimeline").elements("S"))
    ]
    return SegmentTemplate(
        initialization=node.attr("initialization"),
        media=node.attr("media"),
        duration=node.attr("duration"),
        start_number=node.attr("startNumber"),
        timescale=node.attr("timescale"),
        presentation_time_offset=node.attr("presentationTimeOffset"),
        timeline=timeline,
    )


def _segment_list(node: _Node) -> SegmentList:
    urls = [
        SegmentUrl(u.attr("media"), u.attr("mediaRange"))
        for u in (_Node.merge([e]) for e in node.elements("SegmentURL"))
    ]
    return SegmentList(
        duration=node.attr("duration"),
        timescale=node.attr("timescale"),
        initialization=_initialization(node.child("Initialization")),
        segment_urls=urls,
    )


def _protections(node: _Node) -> list[str]:
    return [_Node.merge([e]).attr("schemeIdUri") for e in node.elements("ContentProtection")]


def _representation(node: _Node) -> Representation:
    return Representation(
        id=node.attr("id"),
        bandwidth=node.attr_int("bandwidth"),
        width=node.attr_int("width"),
        height=node.attr_int("height"),
        frame_rate=node.attr("frameRate"),
        codecs=node.attr("codecs"),
        mime_type=node.attr("mimeType"),
        lang=node.attr("lang"),
        volume_adjust=node.attr("volumeAdjust"),
        base_url=node.text("BaseURL"),
        role=node.child("Role").attr("value"),
        segment_base=SegmentBase(
            _initialization(node.child("SegmentBase").child("Initialization"))
        ),
        segment_list=_segment_list(node.child("SegmentList")),
        segment_template=_segment_template(node.child("SegmentTemplate")),
        audio_channels=node.child("AudioChannelConfiguration").attr("value"),
        content_protection=_protections(node),
    )


def _adaptation_set(node: _Node) -> AdaptationSet:
    return AdaptationSet(
        content_type=node.attr("contentType"),
        mime_type=node.attr("mimeType"),
        frame_rate=node.attr("frameRate"),
        lang=node.attr("lang"),
        codecs=node.attr("codecs"),
        base_url=node.text("BaseURL"),
        role=node.child("Role").attr("value"),
        representations=[
            _representation(_Node.merge([e])) for e in node.elements("Representation")
        ],
        segment_template=_segment_template(node.child("SegmentTemplate")),
        audio_channels=node.child("AudioChannelConfiguration").attr("value"),
        content_protection=_protections(node),
    )


def _period(node: _Node) -> Period:
    return Period(
        id=node.attr("id"),
        duration=node.attr("duration"),
        base_url=node.text("BaseURL"),
        adaptation_sets=[
            _adaptation_set(_Node.merge([e])) for e in node.elements("AdaptationSet")
        ],
    )


def parse_mpd(content: str) -> Mpd:
    """Parse an MPD document; raise ValueError if it is not one."""
    try:
        root = ET.fromstring(content.encode("utf-8"))
    except ET.ParseError as exc:
        raise ValueError(f"cannot parse MPD XML: {exc}") from exc
    if _local(root.tag) != "MPD":
        raise ValueError(f"expected element <MPD> but found <{_local(root.tag)}>")
    node = _Node.merge([root])
    return Mpd(
        type=node.attr("type"),
        max_segment_duration=node.attr("maxSegmentDuration"),
        availability_start_time=node.attr("availabilityStartTime"),
        time_shift_buffer_depth=node.attr("timeShiftBufferDepth"),
        publish_time=node.attr("publishTime"),
        media_presentation_duration=node.attr("mediaPresentationDuration"),
        base_url=node.text("BaseURL"),
        periods=[_period(_Node.merge([e])) for e in node.elements("Period")],
    )


def _parse_float(text: str) -> Optional[float]:
    if not text or text != text.strip() or "_" in text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def parse_iso8601_duration(text: str) -> timedelta:
    """Parse a 'PT#H#M#S' duration; raise ValueError for other forms."""
    if not text.startswith("PT"):
        raise ValueError(f"invalid duration format: {text}")
    rest = text[2:]
    total = 0.0
    for unit, factor in (("H", 3600), ("M", 60)):
        index = rest.find(unit)
        if index != -1:
            value = _parse_float(rest[:index])
            if value is not None:
                total += value * factor
            rest = rest[index + 1 :]
    index = rest.find("S")
    if index != -1:
        value = _parse_float(rest[:index])
        if value is not None:
            total += value
    return timedelta(seconds=total)


def _round_half_away(value: float) -> float:
    return math.copysign(math.floor(abs(value) + 0.5), value)


def parse_frame_rate(text: str) -> float:
    """A frame rate such as '25' or '30000/1001'; 0 when it cannot be read."""
    if "/" not in text:
        value = _parse_float(text)
        return value if value is not None else 0.0
    parts = text.split("/")
    if len(parts) != 2:
        return 0.0
    numerator, denominator = _parse_float(parts[0]), _parse_float(parts[1])
    if numerator is None or denominator is None or denominator == 0:
        return 0.0
    return _round_half_away(numerator / denominator * 1000) / 1000


def parse_range(text: str) -> tuple[int, int]:
    """'start-end' as (start, length); (0, 0) when it cannot be read."""
    parts = text.split("-")
    if len(parts) != 2 or not all(_INT.fullmatch(part) for part in parts):
        return 0, 0
    start, end = int(parts[0]), int(parts[1])
    return start, end - start + 1


def filter_language(lang: str) -> str:
    """Keep a plausible language code, map anything else to 'und'."""
    if not lang:
        return ""
    return lang if _LANGUAGE.fullmatch(lang) else "und"


def parse_role(role: str) -> RoleType:
    """Map a DASH Role value to a RoleType, defaulting to MAIN."""
    return _ROLES.get(role.replace("-", "").lower(), RoleType.MAIN)


def replace_vars(template: str, variables: Mapping[str, str]) -> str:
    """Substitute $Name$ variables, including the $Number%0Nd$ form."""
    result = template
    for name, value in variables.items():
        result = result.replace(name, value)

    number = variables.get("$Number$")
    if number is None:
        return result

    def _format(match: re.Match) -> str:
        width_text = match.group(1)
        if _INT.fullmatch(width_text) and int(width_text) > 0 and _INT.fullmatch(number):
            return f"{int(number):0{int(width_text)}d}"
        return number

    return _NUMBER_FORMAT.sub(_format, result)


def merge_segment_templates(inner: SegmentTemplate, outer: SegmentTemplate) -> SegmentTemplate:
    """Fill the blank attributes of an inner template from an outer one."""
    return replace(
        inner,
        initialization=inner.initialization or outer.initialization,
        media=inner.media or outer.media,
        duration=inner.duration or outer.duration,
        start_number=inner.start_number or outer.start_number,
        timescale=inner.timescale or outer.timescale,
        presentation_time_offset=inner.presentation_time_offset
        or outer.presentation_time_offset,
    )


def _parseable(url: str) -> bool:
    return not (_CONTROL.search(url) or _BAD_ESCAPE.search(url))


def combine_url(base: str, relative: str) -> str:
    """Resolve a URL reference against a base URL."""
    if not base:
        return relative
    if not relative:
        return base
    if relative.startswith(("http://", "https://")):
        return relative
    if relative.startswith("/") and _parseable(base):
        try:
            parsed = urlparse(base)
        except ValueError:
            parsed = None
        if parsed is not None:
            return f"{parsed.scheme}://{parsed.netloc}{relative}"
    if not (_parseable(base) and _parseable(relative)):
        return simple_combine_url(base, relative)
    try:
        result = urljoin(base, relative)
    except ValueError:
        result = simple_combine_url(base, relative)
    logger.debug("combined %r and %r into %r", base, relative, result)
    return result


def simple_combine_url(base: str, relative: str) -> str:
    """Join by string handling: drop a trailing file name, then append."""
    last_slash = base.rfind("/")
    if last_slash > 7:
        after = base[last_slash + 1 :]
        if "." in after and not base.endswith("/"):
            base = base[: last_slash + 1]
    if not base.endswith("/"):
        base += "/"
    if relative.startswith("./"):
        relative = relative[2:]
    if relative.startswith("/"):
        relative = relative[1:]
    return base + relative
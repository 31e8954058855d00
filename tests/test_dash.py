from datetime import datetime, timezone

import pytest

from streamkit.dash import DashParser
from streamkit.model import EncryptMethod, MediaType, RoleType
from streamkit.mpd import parse_frame_rate, parse_range

MPD_URL = "https://example.com/dash/manifest.mpd"
BASE_DIR = "https://example.com/dash/"
NS = 'xmlns="urn:mpeg:dash:schema:mpd:2011"'


def parse(xml):
    return DashParser(MPD_URL).parse(xml)


TEMPLATE_MPD = f"""<?xml version="1.0"?>
<MPD {NS} type="static" mediaPresentationDuration="PT10S"
     publishTime="2024-01-02T03:04:05Z">
  <Period id="p0">
    <AdaptationSet mimeType="video/mp4" codecs="avc1.64001f" frameRate="30000/1001">
      <SegmentTemplate media="seg-$RepresentationID$-$Number$.m4s"
                       initialization="init-$RepresentationID$.mp4"
                       duration="2" timescale="1" startNumber="1"/>
      <Representation id="v1" bandwidth="800000" width="1280" height="720"/>
    </AdaptationSet>
  </Period>
</MPD>"""


def test_segment_template_with_duration():
    [stream] = parse(TEMPLATE_MPD)
    assert stream.media_type == MediaType.VIDEO
    assert stream.resolution == "1280x720"
    assert stream.bandwidth == 800000
    assert stream.codecs == "avc1.64001f"
    assert stream.period_id == "p0"
    assert stream.extension == "m4s"
    assert stream.frame_rate == parse_frame_rate("30000/1001")
    playlist = stream.playlist
    assert playlist.total_duration() == pytest.approx(10.0)
    assert playlist.media_init.url == f"{BASE_DIR}init-v1.mp4"
    assert playlist.media_init.index == -1
    segments = playlist.all_segments()
    assert [s.index for s in segments] == list(range(len(segments)))
    assert [s.name_from_var for s in segments] == [str(n) for n in range(1, len(segments) + 1)]
    assert [s.url for s in segments] == [
        f"{BASE_DIR}seg-v1-{n}.m4s" for n in range(1, len(segments) + 1)
    ]


def test_publish_time_parsed():
    [stream] = parse(TEMPLATE_MPD)
    assert stream.publish_time == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def test_padded_number_format():
    xml = TEMPLATE_MPD.replace("seg-$RepresentationID$-$Number$.m4s", "chunk-$Number%05d$.m4s")
    [stream] = parse(xml)
    assert stream.playlist.all_segments()[0].url == f"{BASE_DIR}chunk-00001.m4s"


def test_segment_timeline():
    xml = f"""<MPD {NS} type="static">
      <Period>
        <AdaptationSet mimeType="audio/mp4" lang="en">
          <Representation id="a1" bandwidth="128000">
            <SegmentTemplate timescale="90000" media="a/$Time$.m4s">
              <SegmentTimeline>
                <S t="0" d="90000" r="2"/>
                <S d="45000"/>
              </SegmentTimeline>
            </SegmentTemplate>
          </Representation>
        </AdaptationSet>
      </Period>
    </MPD>"""
    [stream] = parse(xml)
    assert stream.media_type == MediaType.AUDIO
    assert stream.language == "en"
    segments = stream.playlist.all_segments()
    assert segments[0].name_from_var == "0"
    assert [s.index for s in segments] == list(range(len(segments)))
    for current, following in zip(segments, segments[1:]):
        step = int(following.name_from_var) - int(current.name_from_var)
        assert step == round(current.duration * 90000)
    assert all(s.url == f"{BASE_DIR}a/{s.name_from_var}.m4s" for s in segments)


def test_segment_list_with_ranges():
    xml = f"""<MPD {NS} type="static">
      <Period>
        <AdaptationSet mimeType="video/mp4">
          <Representation id="v" bandwidth="500000" width="640" height="360">
            <SegmentList duration="4" timescale="1">
              <Initialization sourceURL="init.mp4" range="0-99"/>
              <SegmentURL media="video.mp4" mediaRange="100-199"/>
              <SegmentURL media="video.mp4" mediaRange="200-299"/>
            </SegmentList>
          </Representation>
        </AdaptationSet>
      </Period>
    </MPD>"""
    [stream] = parse(xml)
    playlist = stream.playlist
    assert playlist.media_init.url == f"{BASE_DIR}init.mp4"
    assert playlist.media_init.start_range == 0
    segments = playlist.all_segments()
    assert [s.start_range for s in segments] == [100, 200]
    assert segments[0].expect_length == parse_range("100-199")[1]
    assert playlist.total_bytes == sum(s.expect_length for s in segments)
    assert all(s.duration == 4.0 for s in segments)
    assert stream.extension == "m4s"


def test_segment_base_only_sets_init():
    xml = f"""<MPD {NS} type="static" mediaPresentationDuration="PT20S">
      <Period>
        <AdaptationSet mimeType="audio/mp4">
          <Representation id="a">
            <BaseURL>audio.mp4</BaseURL>
            <SegmentBase><Initialization sourceURL="audio.mp4" range="0-499"/></SegmentBase>
          </Representation>
        </AdaptationSet>
      </Period>
    </MPD>"""
    [stream] = parse(xml)
    init = stream.playlist.media_init
    assert init.url == f"{BASE_DIR}audio.mp4"
    assert (init.start_range, init.expect_length) == parse_range("0-499")
    assert stream.playlist.all_segments() == []


def test_base_url_single_segment_uses_period_duration():
    xml = f"""<MPD {NS} type="static" mediaPresentationDuration="PT1M">
      <Period duration="PT30S">
        <BaseURL>media/</BaseURL>
        <AdaptationSet mimeType="video/mp4">
          <Representation id="v" bandwidth="1000" width="640" height="360">
            <BaseURL>video.mp4</BaseURL>
          </Representation>
        </AdaptationSet>
      </Period>
    </MPD>"""
    [stream] = parse(xml)
    [segment] = stream.playlist.all_segments()
    assert segment.url == f"{BASE_DIR}media/video.mp4"
    assert segment.duration == 30.0
    assert stream.extension == "mp4"


def test_mpd_level_absolute_base_url():
    xml = f"""<MPD {NS} type="static" mediaPresentationDuration="PT4S">
      <BaseURL>https://cdn.example.com/content/</BaseURL>
      <Period>
        <AdaptationSet mimeType="video/mp4">
          <SegmentTemplate media="$Number$.m4s" duration="2"/>
          <Representation id="v" width="640" height="360"/>
        </AdaptationSet>
      </Period>
    </MPD>"""
    [stream] = parse(xml)
    segments = stream.playlist.all_segments()
    assert segments
    assert all(s.url.startswith("https://cdn.example.com/content/") for s in segments)


def test_content_protection_marks_cenc():
    xml = TEMPLATE_MPD.replace(
        '<Representation id="v1"',
        '<ContentProtection schemeIdUri="urn:mpeg:dash:mp4protection:2011"/>'
        '<Representation id="v1"',
    )
    [stream] = parse(xml)
    assert stream.playlist.media_init.encrypt_info.method == EncryptMethod.CENC
    assert all(
        s.encrypt_info.method == EncryptMethod.CENC for s in stream.playlist.all_segments()
    )


def test_unprotected_segments_stay_clear():
    [stream] = parse(TEMPLATE_MPD)
    assert all(
        s.encrypt_info.method == EncryptMethod.NONE for s in stream.playlist.all_segments()
    )


def test_default_track_associations():
    xml = f"""<MPD {NS} type="static" mediaPresentationDuration="PT4S">
      <Period>
        <AdaptationSet mimeType="video/mp4">
          <Representation id="video" bandwidth="900000" width="1920" height="1080"/>
        </AdaptationSet>
        <AdaptationSet mimeType="audio/mp4">
          <Representation id="lo" bandwidth="64000"/>
          <Representation id="hi" bandwidth="128000"/>
        </AdaptationSet>
        <AdaptationSet mimeType="text/vtt" lang="fr">
          <Role value="subtitle"/>
          <Representation id="subs" bandwidth="100"/>
        </AdaptationSet>
      </Period>
    </MPD>"""
    streams = parse(xml)
    by_id = {s.group_id: s for s in streams}
    assert by_id["video"].audio_id == "hi"
    assert by_id["video"].subtitle_id == "subs"
    assert by_id["subs"].media_type == MediaType.SUBTITLES
    assert by_id["subs"].role == RoleType.SUBTITLE
    assert by_id["subs"].extension == "vtt"
    assert by_id["subs"].language == "fr"
    assert by_id["lo"].audio_id == ""


def test_stpp_in_mp4_becomes_subtitle_m4s():
    xml = f"""<MPD {NS} type="static" mediaPresentationDuration="PT4S">
      <Period>
        <AdaptationSet mimeType="application/mp4" codecs="stpp">
          <Representation id="ttml"/>
        </AdaptationSet>
      </Period>
    </MPD>"""
    [stream] = parse(xml)
    assert stream.media_type == MediaType.SUBTITLES
    assert stream.extension == "m4s"
    assert stream.need_ttml_conversion is False


def test_volume_adjust_and_language_filter():
    xml = f"""<MPD {NS} type="static" mediaPresentationDuration="PT4S">
      <Period>
        <AdaptationSet mimeType="audio/mp4" lang="en US">
          <Representation id="a" volumeAdjust="boost">
            <AudioChannelConfiguration value="2"/>
          </Representation>
        </AdaptationSet>
      </Period>
    </MPD>"""
    [stream] = parse(xml)
    assert stream.group_id == "a-boost"
    assert stream.language == "und"
    assert stream.channels == "2"


def test_template_without_duration_is_skipped():
    xml = f"""<MPD {NS} type="static" mediaPresentationDuration="PT4S">
      <Period>
        <AdaptationSet mimeType="video/mp4">
          <SegmentTemplate media="$Number$.m4s"/>
          <Representation id="broken" width="640" height="360"/>
        </AdaptationSet>
        <AdaptationSet mimeType="audio/mp4">
          <Representation id="ok"/>
        </AdaptationSet>
      </Period>
    </MPD>"""
    streams = parse(xml)
    assert [s.group_id for s in streams] == ["ok"]


def test_live_template_uses_buffer_depth():
    xml = f"""<MPD {NS} type="dynamic" availabilityStartTime="2020-01-01T00:00:00Z"
                timeShiftBufferDepth="PT10S">
      <Period>
        <AdaptationSet mimeType="video/mp4">
          <SegmentTemplate media="$Number$.m4s" duration="2" timescale="1"/>
          <Representation id="live" width="640" height="360"/>
        </AdaptationSet>
      </Period>
    </MPD>"""
    [stream] = parse(xml)
    playlist = stream.playlist
    assert playlist.is_live is True
    assert playlist.refresh_interval_ms == 5000.0
    segments = playlist.all_segments()
    assert playlist.total_duration() == pytest.approx(10.0)
    assert [s.index for s in segments] == [int(s.name_from_var) for s in segments]
    assert segments[0].index > 1
    assert all(b.index - a.index == 1 for a, b in zip(segments, segments[1:]))


def test_invalid_xml_raises():
    with pytest.raises(ValueError):
        parse("<MPD><Period></MPD>")


def test_not_an_mpd_raises():
    with pytest.raises(ValueError):
        parse("<SmoothStreamingMedia/>")
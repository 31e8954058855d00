# streamkit

streamkit reads DASH (`.mpd`) manifests and turns them into stream descriptions. It can then filter those streams, sort them, line up live streams and cut their segments down. It depends only on the standard library.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Parsing a DASH manifest

`DashParser` works on manifest text that you already have. The URL you pass is used to resolve relative `BaseURL`s and segment URLs.

```python
from streamkit.dash import DashParser

streams = DashParser("https://example.com/stream.mpd").parse(mpd_text)
for stream in streams:
    print(stream)
```

`parse` returns one `StreamSpec` for each usable `Representation`. It raises `ValueError` when the text is not an MPD document. If a single representation cannot be expanded into segments, that representation is skipped and a warning is logged. Segments come from the manifest's `SegmentBase`, `SegmentList` or `SegmentTemplate`, with or without a `SegmentTimeline`. When a representation has none of these, its base URL becomes one segment.

Video streams, meaning those that have a resolution, get their `audio_id` and `subtitle_id` set to the highest-bandwidth audio and subtitle streams.

`streamkit.mpd` contains the document model (`Mpd`, `Period`, `AdaptationSet`, `Representation`, `SegmentTemplate` and the rest) and `parse_mpd`. It also has the helpers the parser builds on:

- `parse_iso8601_duration`: reads `PT#H#M#S` durations.
- `parse_frame_rate`, `parse_range`, `filter_language` and `parse_role`.
- `replace_vars`: fills in `$RepresentationID$`, `$Number$`, `$Number%05d$` and similar variables.
- `merge_segment_templates`, `combine_url` and `simple_combine_url`.

## The data model

`streamkit.model` defines `StreamSpec`, `Playlist`, `MediaPart`, `MediaSegment` and `EncryptInfo`. It also defines these enums: `MediaType`, `EncryptMethod`, `RoleType`, `Choice` and `ExtractorType`.

A stream's playlist holds parts, and each part holds segments. `Playlist.total_duration()`, `Playlist.all_segments()` and `StreamSpec.segments_count()` summarise that content. `StreamSpec.short_description()` and `str(stream)` return one-line summaries.

`StreamFilter` and `CustomRange` describe what to select.

## Filtering and ordering

`streamkit.filters` has these functions:

- `do_filter_keep(streams, stream_filter)` keeps the streams that match every criterion of a `StreamFilter`. It then applies `selection`:
  - `"best"` keeps the first match.
  - `"worst"` keeps the last match.
  - `"bestN"` keeps the first N matches.
  - `"worstN"` keeps the last N matches.
- `do_filter_drop(streams, stream_filter)` returns the streams that `do_filter_keep` would not select.
- `sort_streams(streams)` returns a new list. It orders by media type (video, then audio, then subtitles), then by bandwidth descending, then by channel count descending.
- `sync_streams(streams, take_last_count)` lines up live streams on a shared start. It uses segment date-times when every segment has one, and segment indexes otherwise. It then keeps only the latest segments. A count of 0 means 15.
- `apply_custom_range(streams, custom_range)` keeps only the segments inside an index range or a time range. It raises `ValueError` if the range gives neither.
- `clean_ad(streams, keywords)` removes segments whose URL matches any of the regular expressions in `keywords`. It then drops parts that are left empty.

## Utilities

- `streamkit.files`:
  - `read_file`, `write_file`, `file_exists`, `create_dir`, `remove_file`, `remove_dir` and `file_size`.
  - `format_file_size(1536)` returns `"1.5 KB"`.
  - `find_executable(name)` searches the working directory, the program's directory and `PATH`. It returns the name unchanged when nothing is found.
- `streamkit.params`: `parse_complex_params("format=mp4:muxer=ffmpeg")` returns `{"format": "mp4", "muxer": "ffmpeg"}`.
- `streamkit.commands`: `run_command` and `run_command_with_output` run an external program. Both capture its combined stdout and stderr. When the program cannot be started or exits non-zero, they raise `CommandError`, which carries `output` and `returncode`.

## What it does not do

streamkit does not fetch anything over the network. You supply the manifest text yourself.

It has no HLS (`.m3u8`) parser and no automatic detection of the manifest type. It has no command-line program, and it does not download, decrypt or merge segments.
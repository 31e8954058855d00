"""Parse DASH manifests into stream descriptions, then filter, sort and trim the streams."""

__version__ = "0.1.0"
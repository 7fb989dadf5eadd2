"""
Tests for project metadata.
"""

from __about__ import __version__, metadata_summary


def test_metadata_summary():
    meta = metadata_summary()
    assert meta["title"] == "Spindle"
    assert meta["version"] == __version__
    assert meta["license"] == "LGPL-3.0-or-later"

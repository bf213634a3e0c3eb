"""
Tests for the CSV fix reader.
"""

import pytest

from tracklog.parsers.fixes_csv import iter_fixes


def write_csv(tmp_path, text):
    p = tmp_path / "fixes.csv"
    p.write_text(text, encoding="utf-8")
    return p


def test_reads_required_and_optional_columns(tmp_path):
    p = write_csv(
        tmp_path,
        "time,latitude,longitude,accuracy,altitude,speed\n"
        "1000,51.5,-0.1,4.0,12.5,1.2\n"
        "2000,51.5001,-0.1,4.0,,\n",
    )
    fixes = list(iter_fixes(p))
    assert len(fixes) == 2
    assert fixes[0].time == 1000
    assert fixes[0].altitude == 12.5
    assert fixes[0].speed == 1.2
    assert fixes[1].altitude == 0.0
    assert fixes[1].bearing == 0.0


def test_skips_malformed_rows(tmp_path):
    p = write_csv(
        tmp_path,
        "time,latitude,longitude,accuracy\n"
        "1000,51.5,-0.1,4.0\n"
        "oops,51.5,-0.1,4.0\n"
        "3000,,-0.1,4.0\n"
        "4000,51.5,-0.1,4.0\n",
    )
    assert [f.time for f in iter_fixes(p)] == [1000, 4000]


def test_missing_column(tmp_path):
    p = write_csv(tmp_path, "time,latitude,longitude\n1000,51.5,-0.1\n")
    with pytest.raises(KeyError):
        list(iter_fixes(p))

import pytest

from rdmgen.pkg.output import CHANNELS, OutStream


def test_channels_concatenate_in_order():
    out = OutStream()
    out.append("footer", "f\n")
    out.append("task", "t\n")
    out.append("subtask", "s\n")
    out.append("header", "h\n")
    assert CHANNELS == ("header", "task", "subtask", "footer")
    assert out.str() == "h\nt\ns\nf\n"
    assert str(out) == out.str()
    assert out.channel("task") == "t\n"


def test_merge_appends_channel_by_channel():
    first = OutStream(header=["h1\n"], task=["t1\n"])
    second = OutStream(header=["h2\n"], task=["t2\n"], footer=["f2\n"])
    assert first.merge(second) is first
    assert first.header == ["h1\n", "h2\n"]
    assert first.task == ["t1\n", "t2\n"]
    assert first.footer == ["f2\n"]
    assert second.header == ["h2\n"]


def test_copy_is_independent():
    out = OutStream(task=["t\n"])
    other = out.copy()
    other.append("task", "more\n")
    assert out.task == ["t\n"]
    assert other.str() == "t\nmore\n"


def test_unknown_channel():
    with pytest.raises(ValueError):
        OutStream().append("body", "x")

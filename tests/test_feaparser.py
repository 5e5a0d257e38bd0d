import pytest

from fpgaprog.feaparser import FeaParser


def row_bits(w2, w1, w0):
    return format(w2, "032b") + format(w1, "032b") + format(w0, "032b")


def fea_file(w2, w1, w0, feabits, sep="\n"):
    return row_bits(w2, w1, w0) + sep + format(feabits, "032b") + sep


def parse(text):
    return FeaParser(text, False).parse()


def test_feature_row_round_trip():
    words = (0xDEADBEEF, 0x01020304, 0xCAFEF00D)
    parser = parse(fea_file(*words, 0))
    assert parser.features_row == (words[2], words[1], words[0])
    assert parser.has_feabits is True


def test_feabits_round_trip():
    value = 0x0001ABCD
    assert parse(fea_file(0, 0, 0, value)).feabits == value


def test_short_feabits_line_is_msb_first():
    text = row_bits(0, 0, 0) + "\n" + "101\n"
    assert parse(text).feabits == 5


def test_empty_content_has_no_feabits():
    parser = parse("")
    assert parser.has_feabits is False
    assert parser.describe() == ""


def test_non_bit_lines_are_skipped():
    plain = parse(fea_file(1, 2, 3, 4))
    annotated = parse("# feature file\n" + fea_file(1, 2, 3, 4))
    assert annotated.features_row == plain.features_row
    assert annotated.feabits == plain.feabits


def test_crlf_lines():
    crlf = parse(fea_file(7, 8, 9, 10, sep="\r\n"))
    lf = parse(fea_file(7, 8, 9, 10))
    assert crlf.features_row == lf.features_row
    assert crlf.feabits == lf.feabits


def test_blank_line_ends_reading():
    text = row_bits(0, 0, 0) + "\n\n" + format(1, "032b") + "\n"
    with pytest.raises(ValueError):
        parse(text)


def test_row_too_long_raises():
    with pytest.raises(ValueError):
        parse("0" * 97 + "\n" + "1\n")


def test_describe_shows_words():
    w2, w1, w0 = 0x11223344, 0x55667788, 0x99AABBCC
    text = parse(fea_file(w2, w1, w0, 0)).describe()
    assert f"Feature Row: [0x{w2:08x}{w1:08x}{w0:08x}]" in text
    assert f"Custom ID Code        : 0x{w0:x}\n" in text
    assert "Flash Protection     : None\n" in text


@pytest.mark.parametrize(
    "feabits, expected",
    [
        (3 << 12, "Single Boot, CFG0\n"),
        (0, "Dual Boot, CFG0 - CFG1\n"),
        ((1 << 11) | (2 << 12), "Dual Boot, Ext - CFG0\n"),
        ((1 << 11) | (6 << 12), "Dual Boot, Ext - CFG1\n"),
        (6 << 12, "Dual Boot, No Boot\n"),
    ],
)
def test_boot_mode(feabits, expected):
    text = parse(fea_file(0, 0, 0, feabits)).describe()
    assert "\tBoot Mode             : " + expected in text


def test_flags_in_description():
    feabits = (1 << 11) | (1 << 0) | (0x7 << 1)
    text = parse(fea_file(1 << 29, 0, 0, feabits)).describe()
    assert "\tMSPI Enable          : Yes\n" in text
    assert "\tI2C Deglitch Filter   : Enabled\n" in text
    assert "CFG0 & CFG1 Feature, Security Keys All UFMs\n" in text
    assert "\tCPU                   : 1\n" in text
    assert "\tJTAG Disable         : No\n" in text
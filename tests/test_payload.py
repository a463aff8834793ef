"""Tests for emotikairos.payload: type-tag dispatch, numeric coercion and
payload values.
"""

import numpy as np
import pytest

from emotikairos.errors import DecodeError, UnknownTypeTagError
from emotikairos.payload import (
    KIND_FLOAT,
    KIND_INT,
    KIND_NONE,
    KIND_STRING,
    KIND_STRINGS,
    KIND_UINT,
    SKIP_TO_PAYLOAD,
    TAG_KINDS,
    Payload,
    decode_payload,
    format_number,
    parse_float,
    parse_int,
    to_joined_string,
    to_numeric_array,
    to_string_list,
)

HEADER = ["1126349", "49106", "3", "XX", "1", "100"]


def _record(tag, *payload):
    return HEADER[:3] + [tag] + HEADER[4:] + list(payload)


class TestFieldParsing:
    def test_parse_float_trims(self):
        assert parse_float(" 1.25 ") == 1.25

    def test_parse_float_rejects_underscores(self):
        with pytest.raises(ValueError):
            parse_float("1_000.5")

    def test_parse_float_rejects_text(self):
        with pytest.raises(ValueError):
            parse_float("abc")

    def test_parse_int_unsigned_rejects_negative(self):
        with pytest.raises(ValueError):
            parse_int("-1", np.uint32)

    def test_parse_int_range(self):
        assert parse_int("255", np.uint8) == 255
        with pytest.raises(ValueError, match="out of range"):
            parse_int("256", np.uint8)

    def test_parse_int_rejects_float_text(self):
        with pytest.raises(ValueError):
            parse_int("1.5", np.int32)

    def test_parse_int_signed(self):
        assert parse_int("-42", np.int32) == -42
        assert parse_int("+7", np.int32) == 7


class TestCoercionHelpers:
    def test_numeric_array_all_fields(self):
        fields = _record("EA", "0.5", " 1.5", "2")
        arr = to_numeric_array(fields, SKIP_TO_PAYLOAD, KIND_FLOAT)
        assert arr.dtype == np.float32
        np.testing.assert_allclose(arr, [0.5, 1.5, 2.0])

    def test_numeric_array_is_read_only(self):
        arr = to_numeric_array(_record("PI", "1"), SKIP_TO_PAYLOAD, KIND_UINT)
        with pytest.raises(ValueError):
            arr[0] = 5

    def test_numeric_array_all_or_nothing(self):
        fields = _record("PI", "1", "2", "x", "4")
        with pytest.raises(DecodeError, match="field 8"):
            to_numeric_array(fields, SKIP_TO_PAYLOAD, KIND_UINT)

    def test_numeric_array_empty(self):
        arr = to_numeric_array(_record("MX"), SKIP_TO_PAYLOAD, KIND_INT)
        assert arr.shape == (0,)

    def test_string_list_verbatim(self):
        fields = _record("RD", " a", "b ", "")
        assert to_string_list(fields, SKIP_TO_PAYLOAD) == (" a", "b ", "")

    def test_string_list_empty(self):
        assert to_string_list(_record("AK"), SKIP_TO_PAYLOAD) == ()

    def test_joined_string_restores_commas(self):
        fields = _record("RB", "session", "note", "with commas")
        assert to_joined_string(fields, SKIP_TO_PAYLOAD) == \
            "session,note,with commas"

    def test_joined_string_requires_a_field(self):
        with pytest.raises(DecodeError, match="Missing string payload"):
            to_joined_string(_record("TL"), SKIP_TO_PAYLOAD)


class TestDecodePayload:
    def test_float_tag(self):
        p = decode_payload("AX", _record("AX", "0.1", "-0.2"))
        assert p.kind == KIND_FLOAT
        np.testing.assert_allclose(p.data, [0.1, -0.2], rtol=1e-6)

    def test_uint_tag(self):
        p = decode_payload("PI", _record("PI", "156593", "156471"))
        assert p.data.dtype == np.uint32
        np.testing.assert_array_equal(p.data, [156593, 156471])

    def test_battery_percent_tag(self):
        p = decode_payload("B%", _record("B%", "87"))
        assert p.type_tag == "B%"
        np.testing.assert_array_equal(p.data, [87])

    def test_int_tag_accepts_negative(self):
        p = decode_payload("MZ", _record("MZ", "-12", "40"))
        np.testing.assert_array_equal(p.data, [-12, 40])

    def test_uint_tag_rejects_negative(self):
        with pytest.raises(DecodeError):
            decode_payload("PG", _record("PG", "-1"))

    def test_strings_tag(self):
        p = decode_payload("EM", _record("EM", "RS", "Recording started"))
        assert p.kind == KIND_STRINGS
        assert p.data == ("RS", "Recording started")

    def test_single_string_tag(self):
        p = decode_payload("TL", _record("TL", "2023-05-01_10-00-00-1234"))
        assert p.kind == KIND_STRING
        assert p.data == "2023-05-01_10-00-00-1234"

    def test_no_payload_tag_ignores_fields(self):
        p = decode_payload("S+", _record("S+", "whatever", "1"))
        assert p.kind == KIND_NONE
        assert p.data is None
        assert p.values() == []

    def test_unknown_tag(self):
        record = _record("ZZ", "1")
        with pytest.raises(UnknownTypeTagError) as excinfo:
            decode_payload("ZZ", record)
        assert excinfo.value.type_tag == "ZZ"
        assert excinfo.value.record == record
        assert "Unrecognized type tag" in str(excinfo.value)

    @pytest.mark.parametrize("tag", ["TX_LC_LM", "TX_TL_LC"])
    def test_refined_tags_not_decodable(self, tag):
        with pytest.raises(UnknownTypeTagError):
            decode_payload(tag, _record(tag, "1", "2"))

    def test_every_raw_tag_decodes_empty_payload(self):
        for tag, kind in TAG_KINDS.items():
            if tag.startswith("TX_"):
                continue
            if kind == KIND_STRING:
                p = decode_payload(tag, _record(tag, "x"))
            else:
                p = decode_payload(tag, _record(tag))
            assert p.type_tag == tag


class TestPayloadValue:
    def test_values_render_float32_shortest(self):
        p = Payload("EA", [0.1, 2.0])
        assert p.values() == ["0.1", "2"]

    def test_values_string_float(self):
        p = Payload("TX_TL_LC", ("2023-05-01_10-00-00-1234", 5.5))
        assert p.values() == ["2023-05-01_10-00-00-1234", "5.5"]

    def test_float_pair_needs_two_values(self):
        with pytest.raises(ValueError, match="exactly 2"):
            Payload("TX_LC_LM", [1.0])

    def test_unknown_tag_rejected(self):
        with pytest.raises(UnknownTypeTagError):
            Payload("??", None)

    def test_equality(self):
        assert Payload("PI", [1, 2]) == Payload("PI", [1, 2])
        assert Payload("PI", [1, 2]) != Payload("PR", [1, 2])
        assert Payload("PI", [1, 2]) != Payload("PI", [1, 3])
        assert Payload("AK", ["a"]) == Payload("AK", ("a",))


class TestFormatNumber:
    def test_integral_float(self):
        assert format_number(1126349.0) == "1126349"

    def test_fractional_float(self):
        assert format_number(0.25) == "0.25"

    def test_numpy_int(self):
        assert format_number(np.uint32(156593)) == "156593"

    def test_float32_shortest(self):
        assert format_number(np.float32(0.1)) == "0.1"

    def test_round_trips_value(self):
        for v in (1.0 / 3.0, 1700000000.123456, -2.5e-7):
            assert float(format_number(v)) == v

"""
Unit Tests for the Result Classifier

Run with: pytest tests/unit/test_result_classifier.py -v
"""

import numpy as np
import pytest

from core.result_classifier import (
    Shape,
    classify,
    detect_engine_error,
    is_number,
    is_visual_worthy,
)


class TestShapes:
    def test_records_are_table_with_union_columns(self):
        c = classify([{"a": 1, "b": 2}, {"a": 3, "c": "x"}])

        assert c.shape is Shape.TABLE
        assert c.table.columns == ["a", "b", "c"]
        assert c.table.as_text_grid() == [["a", "b", "c"], ["1", "2", ""], ["3", "", "x"]]

    def test_column_dict_is_table(self):
        c = classify({"sym": ["a", "b"], "px": [1.5, 2.5]})

        assert c.shape is Shape.TABLE
        assert c.table.columns == ["sym", "px"]
        assert c.table.rows == [{"sym": "a", "px": 1.5}, {"sym": "b", "px": 2.5}]
        assert c.table.numeric_columns() == ["px"]

    def test_ragged_column_dict_is_text(self):
        assert classify({"a": [1, 2], "b": [1]}).shape is Shape.TEXT

    def test_numeric_series(self):
        c = classify([0, 1, 2, 3.5])

        assert c.shape is Shape.NUMERIC_SERIES
        np.testing.assert_array_equal(c.series, [0.0, 1.0, 2.0, 3.5])

    @pytest.mark.parametrize("value", [[True, False], [1, "a"], [1, None], [], None, 42, "abc"])
    def test_non_series_values_are_text(self, value):
        assert classify(value).shape is Shape.TEXT

    def test_grayscale_matrix_keeps_dims(self):
        matrix = [[0, 1, 2], [3, 4, 5]]
        c = classify(matrix)

        assert c.shape is Shape.MATRIX_IMAGE
        assert not c.image.color
        assert c.image.dims == (2, 3)
        assert c.image.frames == 1
        assert c.image.pixels[0, 0, 0] == 0
        assert c.image.pixels[0, 1, 2] == 255

    def test_constant_grayscale_matrix(self):
        c = classify([[7, 7], [7, 7]])
        assert (c.image.pixels == 7).all()

        c = classify([[900, 900]])
        assert (c.image.pixels == 255).all()

    def test_ragged_matrix_is_text(self):
        assert classify([[1, 2], [3]]).shape is Shape.TEXT

    def test_color_matrix_takes_precedence(self):
        c = classify([[[1, 0, 0], [0, 0.5, 1]], [[255, 128, 0], [10, 20, 30]]])

        assert c.shape is Shape.MATRIX_IMAGE
        assert c.image.color
        assert c.image.dims == (2, 2)
        assert c.image.pixels.shape == (1, 2, 2, 4)
        assert list(c.image.pixels[0, 0, 0]) == [255, 0, 0, 255]
        assert list(c.image.pixels[0, 1, 0]) == [255, 128, 0, 255]

    def test_rgba_alpha_is_kept(self):
        c = classify([[[10, 20, 30, 40]]])
        assert list(c.image.pixels[0, 0, 0]) == [10, 20, 30, 40]

    def test_rows_of_three_numbers_are_grayscale(self):
        # a bare 2-D array of numbers is grayscale even when rows have 3 entries
        c = classify([[1, 2, 3], [4, 5, 6]])
        assert c.shape is Shape.MATRIX_IMAGE

    def test_grayscale_frames(self):
        frames = [[[0, 1], [2, 3]], [[4, 5], [6, 7]], [[1, 1], [1, 1]]]
        c = classify(frames)

        assert c.shape is Shape.MATRIX_IMAGE
        assert c.image.frames == 3
        assert c.image.dims == (2, 2)

    def test_text_rendering_is_attached(self):
        c = classify({"a": 1})
        assert c.shape is Shape.TEXT
        assert '"a": 1' in c.text


class TestEngineErrors:
    def test_error_with_msg(self):
        assert detect_engine_error({"error": "ExecutionError", "msg": "type"}) == "type"

    def test_capitalized_error_field(self):
        assert detect_engine_error({"Error": "rank"}) == "rank"

    def test_message_field_fallback(self):
        assert detect_engine_error({"error": True, "message": "length"}) == "length"

    def test_falsy_error_is_not_an_error(self):
        assert detect_engine_error({"error": "", "msg": "x"}) is None
        assert detect_engine_error({"a": 1}) is None
        assert detect_engine_error([1, 2]) is None


class TestVisualWorthy:
    @pytest.mark.parametrize("value", ["s", 1, 2.5, True, None, [], [None, None]])
    def test_trivial_values(self, value):
        assert not is_visual_worthy(value)

    @pytest.mark.parametrize("value", [[1, 2], {"a": [1]}, [[1]], [None, 1]])
    def test_structured_values(self, value):
        assert is_visual_worthy(value)


def test_is_number_rejects_bool_and_nan():
    assert is_number(1)
    assert is_number(1.5)
    assert not is_number(True)
    assert not is_number(float("nan"))
    assert not is_number(float("inf"))

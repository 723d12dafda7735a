"""
Tests for Gesture Recognition Module
=====================================
"""

import pytest
import numpy as np

from formation.core.types import GestureCategory
from formation.modules.capture.synthetic_hand import (
    build_hand_frame, shape_frame, SyntheticHandSource,
)
from formation.modules.detection import landmark_extractor as lm
from formation.modules.recognition.gesture_classifier import GestureClassifier


def create_mock_landmarks(fingers: dict, thumb: float = 1.0, center=(0.5, 0.5)):
    """Hand with the given long-finger extension ratios (missing fingers folded)."""
    ratios = {name: fingers.get(name, 1.0) for name in lm.LONG_FINGERS}
    return build_hand_frame(ratios, thumb, center=center)


class TestGestureClassifier:
    """Test suite for the rule-based classifier."""

    @pytest.fixture
    def classifier(self):
        return GestureClassifier({})

    def test_open_hand(self, classifier):
        hand = create_mock_landmarks(
            {"index": 2.0, "middle": 2.0, "ring": 2.0, "pinky": 2.0}, thumb=1.3
        )
        result = classifier.classify(hand)
        assert result.category == GestureCategory.OPEN
        assert result.extended_count == 5

    def test_open_with_folded_thumb(self, classifier):
        hand = create_mock_landmarks(
            {"index": 2.0, "middle": 2.0, "ring": 2.0, "pinky": 2.0}, thumb=1.0
        )
        result = classifier.classify(hand)
        assert result.category == GestureCategory.OPEN
        assert result.extended_count == 4

    def test_closed_fist(self, classifier):
        result = classifier.classify(create_mock_landmarks({}, thumb=1.0))
        assert result.category == GestureCategory.FIST
        assert result.extended_count == 0

    def test_fist_with_thumb_out(self, classifier):
        result = classifier.classify(create_mock_landmarks({}, thumb=1.3))
        assert result.category == GestureCategory.FIST
        assert result.extended_count == 1

    def test_pointing(self, classifier):
        result = classifier.classify(create_mock_landmarks({"index": 2.0}))
        assert result.category == GestureCategory.POINTING
        assert result.finger_states["index"] is True

    def test_pointing_ignores_thumb(self, classifier):
        result = classifier.classify(create_mock_landmarks({"index": 2.0}, thumb=1.4))
        assert result.category == GestureCategory.POINTING

    def test_two_fingers_is_ambiguous(self, classifier):
        result = classifier.classify(create_mock_landmarks({"index": 2.0, "middle": 2.0}))
        assert result.category == GestureCategory.AMBIGUOUS
        assert result.extended_count == 2

    def test_three_fingers_is_ambiguous(self, classifier):
        hand = create_mock_landmarks({"index": 2.0, "middle": 2.0, "ring": 2.0})
        assert classifier.classify(hand).category == GestureCategory.AMBIGUOUS

    def test_ratio_just_below_threshold_is_folded(self, classifier):
        hand = create_mock_landmarks({"index": 1.45, "middle": 1.45, "ring": 1.45, "pinky": 1.45})
        result = classifier.classify(hand)
        assert result.extended_count == 0
        assert result.category == GestureCategory.FIST

    def test_none_input(self, classifier):
        result = classifier.classify(None)
        assert result.category == GestureCategory.NONE
        assert not result.has_hand

    @pytest.mark.parametrize("bad", [
        np.zeros((5, 3)),
        np.zeros((21,)),
        [[1, 2, 3]] * 10,
        "not landmarks",
    ])
    def test_malformed_input_is_none(self, classifier, bad):
        assert classifier.classify(bad).category == GestureCategory.NONE

    def test_nan_input_is_none(self, classifier):
        hand = create_mock_landmarks({"index": 2.0})
        hand[8, 0] = np.nan
        assert classifier.classify(hand).category == GestureCategory.NONE

    def test_hand_center_reported(self, classifier):
        hand = create_mock_landmarks({"index": 2.0}, center=(0.3, 0.7))
        cx, cy = classifier.classify(hand).hand_center
        assert cx == pytest.approx(0.3)
        assert cy == pytest.approx(0.7)

    def test_configurable_threshold(self):
        strict = GestureClassifier({"finger_extension_ratio": 2.5})
        hand = create_mock_landmarks({"index": 2.0, "middle": 2.0, "ring": 2.0, "pinky": 2.0})
        assert strict.classify(hand).category == GestureCategory.FIST

    def test_classifier_is_stateless(self, classifier):
        fist = create_mock_landmarks({})
        first = classifier.classify(fist).category
        classifier.classify(create_mock_landmarks({"index": 2.0}))
        assert classifier.classify(fist).category == first


class TestLandmarkExtractor:
    """Geometry helpers."""

    @pytest.fixture
    def hand(self):
        return create_mock_landmarks({"index": 2.0, "middle": 1.0}, thumb=1.3)

    def test_extension_ratios(self, hand):
        ratios = lm.extension_ratios(hand)
        assert ratios["index"] == pytest.approx(2.0)
        assert ratios["middle"] == pytest.approx(1.0)
        assert ratios["thumb"] == pytest.approx(1.3)

    def test_ratios_ignore_depth(self, hand):
        hand[:, 2] = np.linspace(-0.5, 0.5, 21)
        assert lm.extension_ratios(hand)["index"] == pytest.approx(2.0)

    def test_zero_base_distance(self):
        hand = np.zeros((21, 3))
        hand[lm.INDEX_TIP] = [0.1, 0.0, 0.0]
        ratios = lm.extension_ratios(hand)
        assert ratios["index"] == float("inf")
        assert ratios["middle"] == 0.0

    def test_hand_center_is_palm_mean(self, hand):
        expected = hand[list(lm.PALM_POINTS), :2].mean(axis=0)
        assert lm.hand_center(hand) == pytest.approx(tuple(expected))

    def test_bounding_box(self, hand):
        x, y, w, h = lm.bounding_box(hand)
        assert w > 0
        assert h > 0
        assert 0.0 <= x <= 1.0
        assert 0.0 <= y <= 1.0

    def test_two_column_input_is_padded(self, hand):
        arr = lm.to_landmark_array(hand[:, :2])
        assert arr.shape == (21, 3)
        assert np.all(arr[:, 2] == 0.0)

    def test_extra_rows_are_truncated(self, hand):
        arr = lm.to_landmark_array(np.vstack([hand, hand]))
        assert arr.shape == (21, 3)


class TestSyntheticHand:
    """The synthetic hand must classify as the shape it claims to be."""

    @pytest.fixture
    def classifier(self):
        return GestureClassifier({})

    @pytest.mark.parametrize("shape,category", [
        ("open", GestureCategory.OPEN),
        ("fist", GestureCategory.FIST),
        ("point", GestureCategory.POINTING),
        ("ambiguous", GestureCategory.AMBIGUOUS),
    ])
    def test_named_shapes(self, classifier, shape, category):
        assert classifier.classify(shape_frame(shape)).category == category

    def test_unknown_shape(self):
        with pytest.raises(ValueError):
            shape_frame("peace")

    def test_noise_keeps_category(self, classifier):
        rng = np.random.default_rng(1)
        for _ in range(20):
            hand = shape_frame("open", noise=0.002, rng=rng)
            assert classifier.classify(hand).category == GestureCategory.OPEN

    def test_source_replays_script(self):
        script = [("open", 2, (0.2, 0.5), (0.4, 0.5)), (None, 1, (0.5, 0.5), (0.5, 0.5))]
        source = SyntheticHandSource(script, loop=False)
        assert len(source) == 3
        first = source.next_frame()
        second = source.next_frame()
        assert lm.hand_center(first)[0] == pytest.approx(0.2)
        assert lm.hand_center(second)[0] == pytest.approx(0.4)
        assert source.next_frame() is None
        assert source.finished
        assert source.next_frame() is None

    def test_source_loops(self):
        source = SyntheticHandSource([("fist", 1, (0.5, 0.5), (0.5, 0.5))], loop=True)
        for _ in range(3):
            assert source.next_frame() is not None
        assert not source.finished


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

from __future__ import annotations

import numpy as np
import pytest

from vowelmirror.analysis.smoothing import ExponentialSmoother, ScoreSmoother


def test_first_sample_passes_through() -> None:
    smoother = ExponentialSmoother(alpha=0.9)
    out = smoother.update([0.3, -1.0, 2.0])
    assert np.allclose(out, [0.3, -1.0, 2.0])


def test_update_blends_previous_and_new() -> None:
    smoother = ExponentialSmoother(alpha=0.25)
    smoother.update([1.0, 0.0])
    out = smoother.update([0.0, 4.0])
    assert np.allclose(out, [0.25, 3.0])


@pytest.mark.parametrize("alpha", [0.0, 0.5, 0.9, 0.99])
def test_constant_stream_converges(alpha: float) -> None:
    smoother = ExponentialSmoother(alpha=alpha)
    smoother.update([10.0, -10.0])
    target = np.asarray([1.0, 2.0])
    errors = []
    for _ in range(3000):
        errors.append(float(np.max(np.abs(smoother.update(target) - target))))
    assert errors[-1] < 1e-6
    assert all(later <= earlier + 1e-12 for earlier, later in zip(errors, errors[1:]))


def test_history_is_bounded_and_reset_clears_state() -> None:
    smoother = ExponentialSmoother(alpha=0.5, history_size=3)
    for value in range(5):
        smoother.update([float(value)])
    assert len(smoother.history) == 3
    assert smoother.state is not None

    smoother.reset()
    assert smoother.state is None
    assert smoother.history == []
    assert np.allclose(smoother.update([7.0]), [7.0])


def test_independent_instances_do_not_share_state() -> None:
    first = ExponentialSmoother(alpha=0.5)
    second = ExponentialSmoother(alpha=0.5)
    first.update([1.0])
    first.update([3.0])
    assert np.allclose(second.update([5.0]), [5.0])


def test_rejects_bad_parameters_and_shape_changes() -> None:
    with pytest.raises(ValueError):
        ExponentialSmoother(alpha=1.0)
    with pytest.raises(ValueError):
        ExponentialSmoother(alpha=-0.1)
    with pytest.raises(ValueError):
        ExponentialSmoother(history_size=-1)

    smoother = ExponentialSmoother()
    smoother.update([1.0, 2.0])
    with pytest.raises(ValueError):
        smoother.update([1.0, 2.0, 3.0])


def test_score_smoother_holds_missing_and_passes_new_keys() -> None:
    smoother = ScoreSmoother(["jawOpen", "mouthPucker"], alpha=0.5)
    assert smoother.update({"jawOpen": 0.8}) == {"jawOpen": 0.8}

    second = smoother.update({"mouthPucker": 0.6})
    assert second["jawOpen"] == pytest.approx(0.8)
    assert second["mouthPucker"] == pytest.approx(0.6)

    third = smoother.update({"jawOpen": 0.0, "mouthPucker": 0.0, "browDownLeft": 1.0})
    assert third == pytest.approx({"jawOpen": 0.4, "mouthPucker": 0.3})
    assert len(smoother.history) == 3

    smoother.reset()
    assert smoother.update({"mouthPucker": 0.1}) == {"mouthPucker": 0.1}

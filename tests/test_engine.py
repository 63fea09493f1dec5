from __future__ import annotations

import pytest
import torch
from _logs import captured_logs
from _weight_models import FakeModel

from cattle_weight.errors import InferenceError
from cattle_weight.inference.engine import WeightModel


def _zeros() -> torch.Tensor:
    return torch.zeros((1, 128, 128, 3), dtype=torch.float32)


def test_predict_returns_single_scalar_tensor() -> None:
    with WeightModel(FakeModel(42.5), model_id="m") as wm:
        out = wm.predict(_zeros())
    assert tuple(out.shape) == (1, 1)
    assert float(out[0][0]) == 42.5


def test_predict_is_deterministic() -> None:
    with WeightModel(FakeModel(7.25), model_id="m") as wm:
        a = wm.predict(_zeros())
        b = wm.predict(_zeros())
    assert bool((a == b).all())


def test_shapes_exposed() -> None:
    wm = WeightModel(FakeModel(), model_id="m")
    try:
        assert wm.input_shape == (1, 128, 128, 3)
        assert wm.output_shape == (1, 1)
    finally:
        wm.close()


@pytest.mark.parametrize(
    "shape", [(128, 128, 3), (2, 128, 128, 3), (1, 3, 128, 128), (1, 64, 64, 3)]
)
def test_predict_rejects_wrong_input_shape(shape: tuple[int, ...]) -> None:
    fake = FakeModel()
    with WeightModel(fake, model_id="m") as wm:
        with pytest.raises(InferenceError):
            wm.predict(torch.zeros(shape, dtype=torch.float32))
    assert fake.calls == 0


def test_predict_rejects_wrong_output_shape() -> None:
    class _Wide(FakeModel):
        def __call__(self, x: torch.Tensor) -> torch.Tensor:
            return torch.zeros((1, 3), dtype=torch.float32)

    with WeightModel(_Wide(), model_id="m") as wm:
        with pytest.raises(InferenceError) as ei:
            wm.predict(_zeros())
    assert "[1,1]" in ei.value.message


def test_runtime_failure_becomes_inference_error() -> None:
    class _Boom(FakeModel):
        def __call__(self, x: torch.Tensor) -> torch.Tensor:
            raise RuntimeError("kernel exploded")

    with WeightModel(_Boom(), model_id="m") as wm:
        with pytest.raises(InferenceError) as ei:
            wm.predict(_zeros())
    assert "kernel exploded" in ei.value.message


def test_submit_predict_resolves_to_weight() -> None:
    with WeightModel(FakeModel(42.5), model_id="cow_v1") as wm:
        out = wm.submit_predict(_zeros()).result(timeout=5.0)
    assert out.weight_kg == 42.5
    assert out.model_id == "cow_v1"


def test_negative_weight_passes_through_unmodified() -> None:
    with WeightModel(FakeModel(-3.5), model_id="m") as wm:
        out = wm.submit_predict(_zeros()).result(timeout=5.0)
    assert out.weight_kg == -3.5


def test_close_is_idempotent_and_releases_once() -> None:
    with captured_logs() as buf:
        wm = WeightModel(FakeModel(), model_id="m")
        wm.close()
        wm.close()
    assert wm.closed is True
    assert buf.getvalue().count("model_closed") == 1


def test_predict_after_close_raises() -> None:
    wm = WeightModel(FakeModel(), model_id="m")
    wm.close()
    with pytest.raises(InferenceError):
        wm.predict(_zeros())
    with pytest.raises(InferenceError):
        wm.submit_predict(_zeros())


def test_submit_on_shut_down_worker_raises_inference_error() -> None:
    wm = WeightModel(FakeModel(), model_id="m")
    try:
        pool = wm._pool
        assert pool is not None
        pool.shutdown(wait=True)
        with pytest.raises(InferenceError):
            wm.submit_predict(_zeros())
    finally:
        wm.close()

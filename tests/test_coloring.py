import numpy as np
import pytest

from mandelscan import ColorScheme, PixelRecords, ScanFrame, Viewport, checkered, checkered_grayscale, color_pixel, colorize


def _color(iterations, dwell, distance=1.0, final_angle=-1.0, max_iterations=250, pixel_spacing=0.5):
    rgb = checkered(
        np.array([iterations]),
        np.array([dwell]),
        np.array([distance]),
        np.array([final_angle]),
        max_iterations,
        pixel_spacing,
    )
    return rgb[0]


def _frame(scheme=ColorScheme.CHECKERED, max_iterations=250):
    return ScanFrame(
        viewport=Viewport(center=(0.0, 0.0), width=4.0, height=4.0),
        max_iterations=max_iterations,
        pixel_spacing=0.5,
        color_scheme=scheme,
    )


def _records():
    records = PixelRecords.allocate(4)
    records.iterations[:] = [0, 250, 2, 3]
    records.dwell[:] = [0.0, 0.0, 2.5, 3.25]
    records.distance[:] = [0.0, 0.0, 1.0, 0.01]
    records.final_angle[:] = [0.0, np.nan, -1.0, np.inf]
    return records


def test_interior_is_white_and_unscanned_is_black():
    assert _color(250, 0.0).tolist() == [255.0, 255.0, 255.0]
    assert _color(300, 7.5).tolist() == [255.0, 255.0, 255.0]
    assert _color(0, 0.0).tolist() == [0.0, 0.0, 0.0]


def test_even_band_far_from_boundary():
    # dwell 2.5: p = ln 2 / ln 1e6, hue 0.753075, saturation 0.961635, value 1
    r, g, b = _color(2, 2.5)
    assert r == pytest.approx(136.916, abs=0.05)
    assert g == pytest.approx(9.783, abs=0.05)
    assert b == pytest.approx(255.0)


def test_odd_band_is_darker():
    rgb = _color(3, 3.25)
    assert rgb.max() == pytest.approx(0.85 * 255.0)


def test_points_hugging_the_boundary_fade_to_black():
    # distance / spacing = 2^-11 puts dscale below -10
    rgb = _color(2, 2.5, distance=0.5 * 2.0 ** -11)
    assert rgb.tolist() == [0.0, 0.0, 0.0]


def test_value_ramps_with_distance_scale():
    rgb = _color(2, 2.5, distance=0.5 * 2.0 ** -5)
    assert rgb.max() == pytest.approx(0.5 * 255.0)


def test_positive_final_angle_shifts_hue():
    assert not np.allclose(_color(2, 2.5, final_angle=0.3), _color(2, 2.5, final_angle=-0.3))
    assert np.allclose(_color(2, 2.5, final_angle=np.inf), _color(2, 2.5, final_angle=0.3))


def test_grayscale_is_rounded_luma_on_every_channel():
    args = (np.array([2, 3, 250]), np.array([2.5, 3.25, 0.0]), np.array([1.0, 1.0, 0.0]),
            np.array([-1.0, 1.0, 0.0]), 250, 0.5)
    color = checkered(*args)
    gray = checkered_grayscale(*args)
    expected = np.floor(color @ np.array([0.299, 0.587, 0.114]) + 0.5)
    assert (gray[:, 0] == expected).all()
    assert (gray[:, 1] == gray[:, 0]).all() and (gray[:, 2] == gray[:, 0]).all()
    assert gray[2].tolist() == [255.0, 255.0, 255.0]


def test_colorize_dispatches_on_frame_scheme():
    records = _records()
    indices = np.arange(4)
    color = colorize(records, indices, _frame())
    gray = colorize(records, indices, _frame(ColorScheme.CHECKERED_GRAYSCALE))

    assert color.dtype == np.uint8
    assert color[0].tolist() == [0, 0, 0]
    assert color[1].tolist() == [255, 255, 255]
    assert (gray[:, 0] == gray[:, 1]).all() and (gray[:, 1] == gray[:, 2]).all()
    assert not (color[2, 0] == color[2, 1] == color[2, 2])


def test_color_pixel_is_pure_and_repeatable():
    records = _records()
    frame = _frame()
    first = color_pixel(records, 2, frame)
    second = color_pixel(records, 2, frame)
    assert first == second == (137, 10, 255)
    assert records.needs_color.all()


def test_color_scheme_labels_round_trip():
    assert ColorScheme.from_label("checkered-grayscale") is ColorScheme.CHECKERED_GRAYSCALE
    assert ColorScheme(0) is ColorScheme.CHECKERED
    with pytest.raises(ValueError):
        ColorScheme.from_label("rainbow")

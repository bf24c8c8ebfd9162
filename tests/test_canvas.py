import numpy as np
import PIL.Image
import pytest

from conftest import run_to_end
from mandelscan import Canvas, ScanEngine, SelectionRect, colorize, default_viewport, draw_selection, render


def test_fresh_canvas_paints_black_before_any_scan():
    engine = ScanEngine(4, 3)
    canvas = Canvas(4, 3)
    buffer = canvas.paint(engine)
    assert buffer.shape == (3, 4, 4)
    assert (buffer[..., :3] == 0).all()
    assert (buffer[..., 3] == 255).all()
    assert engine.records.needs_color.all()


def test_paint_colors_scanned_pixels_once():
    engine = ScanEngine(6, 4)
    run_to_end(engine.scan_steps(default_viewport(6, 4)))
    canvas = Canvas(6, 4)

    buffer = canvas.paint(engine)
    expected = colorize(engine.records, np.arange(24), engine.frame)
    assert (buffer.reshape(-1, 4)[:, :3] == expected).all()
    assert not engine.records.needs_color.any()

    buffer[...] = 7
    assert (canvas.paint(engine) == 7).all()


def test_paint_mid_scan_leaves_unscanned_rows_black_and_flagged(tick_clock):
    engine = ScanEngine(5, 4, budget=0.5, clock=tick_clock)
    steps = engine.scan_steps(default_viewport(5, 4))
    next(steps)
    canvas = Canvas(5, 4)

    buffer = canvas.paint(engine)
    assert not engine.records.needs_color[:5].any()
    assert engine.records.needs_color[5:].all()
    assert (buffer[1:, :, :3] == 0).all()

    engine.cancel()
    run_to_end(steps)
    next_steps = engine.scan_steps(default_viewport(5, 4))
    run_to_end(next_steps)
    canvas.paint(engine)
    assert not engine.records.needs_color.any()


def test_render_checks_buffer_size():
    engine = ScanEngine(4, 4)
    with pytest.raises(ValueError):
        render(engine.records, engine.frame, np.zeros((2, 2, 4), dtype=np.uint8))
    with pytest.raises(ValueError):
        Canvas(3, 3).paint(engine)


def test_to_image_is_rgba_snapshot():
    canvas = Canvas(4, 2)
    image = canvas.to_image()
    assert image.mode == "RGBA"
    assert image.size == (4, 2)
    canvas.buffer[...] = 9
    assert image.getpixel((0, 0)) == (0, 0, 0, 255)


def test_draw_selection_outlines_box():
    image = PIL.Image.new("RGB", (20, 20), (128, 128, 128))
    marked = draw_selection(image, SelectionRect(15, 15, 5, 5))
    assert marked.mode == "RGBA"
    assert marked.getpixel((5, 10)) == (0, 0, 0, 255)
    assert marked.getpixel((6, 10)) == (255, 255, 255, 255)
    assert marked.getpixel((10, 10)) == (128, 128, 128, 255)

import PIL.Image
import pytest

import explore
from mandelscan import ColorScheme, ScanEnded, ScanOutcome, ScanStarted


def test_parse_action_navigation_steps():
    assert explore.parse_action("zoom-in") == explore.Action(name="zoom-in")
    assert explore.parse_action(" Zoom-Out ") == explore.Action(name="zoom-out")
    assert explore.parse_action("region=10,20,30.5,40") == explore.Action(
        name="region", start=(10.0, 20.0), end=(30.5, 40.0)
    )
    assert explore.parse_action("scheme=checkered-grayscale").scheme is ColorScheme.CHECKERED_GRAYSCALE


@pytest.mark.parametrize("text", ["zoom", "reset=1", "region=1,2,3", "region=a,b,c,d", "scheme=neon"])
def test_parse_action_rejects_malformed_steps(text):
    with pytest.raises(ValueError):
        explore.parse_action(text)


def test_bad_action_is_a_usage_error():
    parser = explore.build_parser()
    with pytest.raises(SystemExit):
        parser.parse_args(["spin"])


def _resolve(args):
    parser = explore.build_parser()
    opt = parser.parse_args(args)
    return explore.resolve_output_config(opt, parser)


def test_default_output_is_single_image(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config = _resolve([])
    assert config.modes == ("image",)
    assert config.image_path == tmp_path / "mandelbrot.png"
    assert config.gif_path is None
    assert config.frame_dir is None


def test_output_suffix_follows_mode(tmp_path):
    config = _resolve(["--mode", "gif", "--output", str(tmp_path / "scan")])
    assert config.gif_path == tmp_path / "scan.gif"

    config = _resolve(["--format", "jpg", "--output", str(tmp_path / "final")])
    assert config.image_path == tmp_path / "final.jpg"


def test_gif_and_image_share_an_output_directory(tmp_path):
    config = _resolve(["--mode", "gif", "--mode", "image", "--output", str(tmp_path)])
    assert config.gif_path == tmp_path / "progress.gif"
    assert config.image_path == tmp_path / "mandelbrot.png"


@pytest.mark.parametrize(
    "args",
    [
        ["--mode", "movie"],
        ["--mode", "gif", "--output", "scan.png"],
        ["--frame-dir", "frames"],
        ["--mode", "frames", "--output", "x.png"],
        ["--width-px", "0"],
        ["--paint-interval", "0"],
        ["--time-limit", "-1"],
    ],
)
def test_conflicting_output_options_are_usage_errors(args):
    with pytest.raises(SystemExit):
        _resolve(args)


def test_main_writes_final_image(tmp_path):
    output = tmp_path / "out.png"
    explore.main(["--width-px", "16", "--height-px", "12", "--show-coordinates",
                  "--output", str(output), "zoom-in", "zoom-out", "scheme=checkered-grayscale"])

    image = PIL.Image.open(output)
    assert image.size == (16, 12)
    assert image.mode == "RGBA"


def test_main_records_progressive_frames(tmp_path):
    frame_dir = tmp_path / "frames"
    explore.main(["--width-px", "12", "--height-px", "12", "--mode", "frames", "--mode", "gif",
                  "--output", str(tmp_path / "progress.gif"), "--frame-dir", str(frame_dir), "--budget-ms", "0",
                  "region=2,2,8,8", "region=1,1,1,1"])

    frames = sorted(frame_dir.glob("paint*.png"))
    # at least a selection preview plus a final paint per scan
    assert len(frames) >= 3
    assert (tmp_path / "progress.gif").exists()
    assert not (tmp_path / "mandelbrot.png").exists()


def test_scan_log_reports_elapsed_time(monkeypatch, capsys):
    monkeypatch.setattr(explore, "VERBOSE", True)
    fields = dict(center=(0.0, 0.0), width=4.0, height=3.0, color_scheme=ColorScheme.CHECKERED)
    scan_log = explore.ScanLog()
    scan_log.started(ScanStarted(success=True, timestamp=10.0, **fields))
    scan_log.ended(ScanEnded(success=False, timestamp=12.25, outcome=ScanOutcome.CANCELLED, **fields))

    lines = capsys.readouterr().out.splitlines()
    assert lines[0].startswith("scan started: Center @ (0.0, 0.0i)")
    assert lines[1] == "scan cancelled after 2.250 s: Center @ (0.0, 0.0i); Width: 4.0; Height: 3.0"
    assert scan_log.started_at is None

from pathlib import Path

from PIL import Image

from cover_crop_tool.config import DEFAULT_SETTINGS
from cover_crop_tool.worker import process_worker


def _args(path: Path, out: Path, **extra) -> dict:
    args = {
        "index": 3,
        "path": str(path),
        "output_root": str(out),
        "crop": None,
        "export": dict(DEFAULT_SETTINGS),
    }
    args.update(extra)
    return args


def test_exports_centered_cover(tmp_path: Path):
    src = tmp_path / "pack.png"
    Image.new("RGB", (800, 600), (30, 60, 90)).save(src)
    out = tmp_path / "out"

    result = process_worker(_args(src, out))

    assert result["success"] is True
    assert result["index"] == 3
    assert result["name"] == "pack.png"
    written = Path(result["output"])
    assert written == out / "pack.jpg"
    assert written.stat().st_size == result["size"] <= DEFAULT_SETTINGS["max_bytes"]
    with Image.open(written) as img:
        assert img.size == (400, 400)
        assert img.format == "JPEG"


def test_applies_saved_crop(tmp_path: Path):
    src = tmp_path / "split.png"
    img = Image.new("RGB", (800, 400), (255, 0, 0))
    img.paste((0, 0, 255), (400, 0, 800, 400))
    img.save(src)
    out = tmp_path / "out"

    result = process_worker(_args(
        src, out,
        crop={"zoom": 1.0, "offset": [-400.0, 0.0]},
        export=dict(DEFAULT_SETTINGS, format="WEBP"),
    ))

    assert result["success"] is True
    written = Path(result["output"])
    assert written == out / "split.webp"
    with Image.open(written) as cover:
        r, g, b = cover.convert("RGB").getpixel((200, 200))
        assert b > 200 and r < 50


def test_reports_failure_instead_of_raising(tmp_path: Path):
    missing = tmp_path / "missing.png"
    result = process_worker(_args(missing, tmp_path / "out"))
    assert result["success"] is False
    assert result["name"] == "missing.png"
    assert result["error"]

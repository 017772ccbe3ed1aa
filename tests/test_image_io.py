from pathlib import Path

import pytest
from PIL import Image

from cover_crop_tool.image_io import (
    SourceImage, compute_fingerprint, get_image_size, open_source, unique_path, write_result,
)
from cover_crop_tool.models import EncodedResult, InvalidDimensionsError, NaturalSize


def test_open_source_reads_natural_size(tmp_path: Path):
    path = tmp_path / "cover.png"
    Image.new("RGBA", (320, 240), (1, 2, 3, 255)).save(path)
    source = open_source(path)
    assert source.size == NaturalSize(320, 240)
    assert source.path == path
    assert source.image.mode == "RGBA"


def test_exif_orientation_is_applied(tmp_path: Path):
    path = tmp_path / "rotated.jpg"
    exif = Image.Exif()
    exif[0x0112] = 6  # rotate 90° CW on display
    Image.new("RGB", (40, 20), (9, 9, 9)).save(path, exif=exif)
    assert get_image_size(path) == (20, 40)
    assert open_source(path).size == NaturalSize(20, 40)


def test_source_rejects_empty_image():
    with pytest.raises(InvalidDimensionsError):
        SourceImage.from_image(Image.new("RGB", (0, 10)))


def test_fingerprint_follows_content(tmp_path: Path):
    a = tmp_path / "a.png"
    b = tmp_path / "sub" / "renamed.png"
    b.parent.mkdir()
    Image.new("RGB", (16, 16), (5, 5, 5)).save(a)
    b.write_bytes(a.read_bytes())
    c = tmp_path / "c.png"
    Image.new("RGB", (16, 16), (250, 5, 5)).save(c)

    assert compute_fingerprint(a) == compute_fingerprint(b)
    assert compute_fingerprint(a) != compute_fingerprint(c)
    size_hex, digest = compute_fingerprint(a).split("_")
    assert int(size_hex, 16) == a.stat().st_size
    assert len(digest) == 16


def test_unique_path(tmp_path: Path):
    target = tmp_path / "cover.jpg"
    assert unique_path(target) == target
    target.touch()
    assert unique_path(target).name == "cover-01.jpg"
    (tmp_path / "cover-01.jpg").touch()
    assert unique_path(target).name == "cover-02.jpg"


def test_write_result_picks_extension_from_mime(tmp_path: Path):
    jpeg = EncodedResult(data=b"\xff\xd8data", mime_type="image/jpeg", quality=0.9)
    webp = EncodedResult(data=b"RIFFdata", mime_type="image/webp", quality=0.5)
    out_dir = tmp_path / "out"

    first = write_result(jpeg, out_dir, "pack")
    second = write_result(jpeg, out_dir, "pack")
    third = write_result(webp, out_dir, "pack")

    assert first.name == "pack.jpg"
    assert second.name == "pack-01.jpg"
    assert third.name == "pack.webp"
    assert first.read_bytes() == jpeg.data


def test_write_result_rejects_unknown_mime(tmp_path: Path):
    bogus = EncodedResult(data=b"", mime_type="image/png", quality=0.9)
    with pytest.raises(ValueError):
        write_result(bogus, tmp_path, "x")

from pathlib import Path

import pytest
from PIL import Image

from cover_crop_tool.image_io import SourceImage


@pytest.fixture
def config_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Redirect every persistence module to a temporary config directory."""
    directory = tmp_path / "config"
    directory.mkdir()
    monkeypatch.setattr("cover_crop_tool.settings.config_dir", lambda: directory)
    monkeypatch.setattr("cover_crop_tool.crop_cache.config_dir", lambda: directory)
    return directory


@pytest.fixture
def make_source():
    def _make(w: int, h: int, color="#808080", mode="RGB") -> SourceImage:
        return SourceImage.from_image(Image.new(mode, (w, h), color))
    return _make


@pytest.fixture
def split_source() -> SourceImage:
    """800x400 image: left half red, right half blue."""
    img = Image.new("RGB", (800, 400), (255, 0, 0))
    img.paste((0, 0, 255), (400, 0, 800, 400))
    return SourceImage.from_image(img)

"""
Export worker function for parallel cover processing (Qt-free).

Runs in ``ProcessPoolExecutor`` children, so nothing reachable from here may
import PyQt6.
"""

from pathlib import Path

from cover_crop_tool.config import CROP_SIZE
from cover_crop_tool.image_io import open_source, write_result
from cover_crop_tool.models import Point
from cover_crop_tool.session import CropSession


def process_worker(args: dict) -> dict:
    """Worker function for parallel cover export. Runs in a separate process.

    ``args["crop"]`` is ``None`` (export the centered crop) or a dict with
    ``zoom`` and ``offset`` (``[x, y]``) as stored in the crop cache.
    ``args["export"]`` uses the keys of ``config.DEFAULT_SETTINGS``.
    """
    idx = args["index"]
    img_path = Path(args["path"])
    output_root = Path(args["output_root"])
    export = args.get("export", {})
    crop = args.get("crop")

    try:
        source = open_source(img_path)
        session = CropSession(viewport=export.get("viewport", CROP_SIZE))
        session.load(source)
        if crop:
            ox, oy = crop["offset"]
            session.restore(crop["zoom"], Point(ox, oy))

        result = session.commit(export)

        out_path = write_result(result, output_root, img_path.stem)

        return {
            "index": idx,
            "success": True,
            "name": img_path.name,
            "output": str(out_path),
            "size": result.size,
            "quality": result.quality,
        }
    except Exception as e:
        return {"index": idx, "success": False, "name": img_path.name, "error": str(e)}

#!/usr/bin/env python3
"""
Fetch the MediaPipe Face Landmarker model used by MediaPipeLandmarkDetector.

The file is written to MEDIAPIPE_MODEL_PATH (default
~/.mediapipe_models/face_landmarker.task).
"""
import sys
import urllib.request
from pathlib import Path

from faceauth.config import config

MODEL_URL = (
    "https://storage.googleapis.com/mediapipe-models/face_landmarker/"
    "face_landmarker/float16/latest/face_landmarker.task"
)


def download_model(target: Path) -> bool:
    """Download the landmarker to ``target`` unless it is already there."""
    if target.exists():
        print(f"✓ Model already present at {target} ({target.stat().st_size / 1024 / 1024:.2f} MB)")
        return True

    target.parent.mkdir(parents=True, exist_ok=True)
    print(f"Downloading {MODEL_URL}")
    print(f"  -> {target}")

    def report_progress(block_num, block_size, total_size):
        if total_size > 0:
            percent = min(100, block_num * block_size * 100 / total_size)
            print(f"\rProgress: {percent:.1f}%", end="")

    try:
        urllib.request.urlretrieve(MODEL_URL, target, reporthook=report_progress)
    except OSError as e:
        print(f"\n✗ Download failed: {e}")
        if target.exists():
            target.unlink()
        return False

    print(f"\n✓ Saved {target.stat().st_size / 1024 / 1024:.2f} MB")
    return True


def main() -> int:
    target = Path(config.MEDIAPIPE_MODEL_PATH).expanduser()
    if not download_model(target):
        print("Check your network connection and try again.")
        return 1

    print("\nUse it with:")
    print(f"  MediaPipeLandmarkDetector(model_path='{target}')")
    print("or set MEDIAPIPE_MODEL_PATH in .env")
    return 0


if __name__ == "__main__":
    sys.exit(main())

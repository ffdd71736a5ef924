import cv2
import numpy as np
import pytest

from labnarrator.ai.config import NarrationConfig, clear_config_cache
from labnarrator.base.lab import Lab, MediaAsset, MediaKind

API_KEY_ENV_VARS = (
    "OPENAI_API_KEY",
    "OPENROUTER_API_KEY",
    "LABNARRATOR_PROXY_KEY",
    "RELAY_GATEWAY_API_KEY",
    "RELAY_GATEWAY_URL",
)


def write_video(path, frames: list[np.ndarray], fps: int = 10) -> str:
    """Write BGR frames to an MJPG .avi file and return its path."""
    height, width = frames[0].shape[:2]
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"MJPG"), fps, (width, height))
    for frame in frames:
        writer.write(frame)
    writer.release()
    return str(path)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep tests independent of API keys and config files on the host."""
    for name in API_KEY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def config():
    return NarrationConfig()


@pytest.fixture
def cloud_config():
    return NarrationConfig(proxy_url="https://relay.example.com/narrate-lab", proxy_key="relay-token")


@pytest.fixture
def sample_image():
    """A 64x48 RGB image with a distinct color in each quadrant."""
    image = np.zeros((48, 64, 3), dtype=np.uint8)
    image[:24, :32] = (255, 0, 0)
    image[:24, 32:] = (0, 255, 0)
    image[24:, :32] = (0, 0, 255)
    image[24:, 32:] = (255, 255, 255)
    return image


@pytest.fixture
def sample_lab():
    return Lab(
        title="Deploying a vSphere Cluster",
        objective="Deploy a three-node ESXi cluster with vCenter",
        environment="VMware Workstation with 3 nested ESXi hosts",
        outcome="A working HA cluster managed from vCenter.",
        tags=["vmware", "esxi"],
        steps=["Install ESXi on three hosts", "", "Deploy the vCenter appliance", "Create the cluster"],
        media=[
            MediaAsset(url="recording-1.webm", kind=MediaKind.VIDEO),
            MediaAsset(url="screenshot.png", kind=MediaKind.IMAGE),
            MediaAsset(url="walkthrough.gif", kind=MediaKind.GIF),
        ],
    )


@pytest.fixture
def uniform_video(tmp_path):
    """Three seconds of a single solid color."""
    frame = np.full((48, 64, 3), 120, dtype=np.uint8)
    return write_video(tmp_path / "uniform.avi", [frame.copy() for _ in range(30)])


@pytest.fixture
def two_scene_video(tmp_path):
    """Two seconds of black followed by two seconds of white."""
    black = np.zeros((48, 64, 3), dtype=np.uint8)
    white = np.full((48, 64, 3), 255, dtype=np.uint8)
    return write_video(tmp_path / "two_scenes.avi", [black.copy() for _ in range(20)] + [white.copy() for _ in range(20)])


@pytest.fixture
def tail_change_video(tmp_path):
    """2.5 seconds of black, then three white frames after the last sampled instant."""
    black = np.zeros((48, 64, 3), dtype=np.uint8)
    white = np.full((48, 64, 3), 255, dtype=np.uint8)
    return write_video(tmp_path / "tail_change.avi", [black.copy() for _ in range(25)] + [white.copy() for _ in range(3)])

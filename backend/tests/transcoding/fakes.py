"""Fakes for transcoding tests.

The fake encoder replays scripted progress per target label instead of
running ffmpeg; the memory sink keeps stored artifacts in a dict.
"""

import asyncio
import os
from pathlib import Path
from typing import AsyncIterator

from app.modules.transcoding.ffmpeg import EncodeCompleted, EncodeError, ProgressEvent
from app.modules.transcoding.models import Resolution
from app.modules.transcoding.schemas import StoredArtifact, TargetProfile
from app.modules.transcoding.storage import ArtifactSink, StoreError


class FakeEncoder:
    """Encoder replaying scripted progress for each target label."""

    def __init__(self):
        self.progress: dict[str, list[float]] = {}
        self.failures: dict[str, EncodeError] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.reached: dict[str, asyncio.Event] = {}
        self.calls: list[str] = []

    def hold(self, label: str) -> None:
        """Make ``label`` stop after its scripted progress until released."""
        self.gates[label] = asyncio.Event()
        self.reached[label] = asyncio.Event()

    def release(self, label: str) -> None:
        self.gates[label].set()

    async def encode(
        self,
        source_path: str,
        profile: TargetProfile,
        output_path: str,
    ) -> AsyncIterator:
        self.calls.append(profile.label)
        if profile.width <= 0 or profile.height <= 0:
            raise EncodeError("invalid_resolution", profile.size)

        for percent in self.progress.get(profile.label, [25.0, 50.0, 75.0]):
            await asyncio.sleep(0)
            yield ProgressEvent(label=profile.label, percent=percent)

        if profile.label in self.gates:
            self.reached[profile.label].set()
            await self.gates[profile.label].wait()

        if profile.label in self.failures:
            raise self.failures[profile.label]

        os.makedirs(os.path.dirname(output_path), exist_ok=True)
        payload = f"{profile.label}:{Path(source_path).name}".encode()
        with open(output_path, "wb") as f:
            f.write(payload)
        yield EncodeCompleted(
            label=profile.label,
            output_path=output_path,
            file_size=len(payload),
            duration=1.0,
        )


class MemorySink(ArtifactSink):
    """Sink storing artifacts in memory, keyed by destination."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.failing_destinations: set[str] = set()
        self.calls = 0

    async def store(self, file_path: str, destination: str) -> StoredArtifact:
        self.calls += 1
        await asyncio.sleep(0)
        if destination in self.failing_destinations:
            raise StoreError("upload_failed", "bucket unavailable")
        with open(file_path, "rb") as f:
            data = f.read()
        self.objects[destination] = data
        return StoredArtifact(key=destination, locator=f"memory://{destination}", file_size=len(data))


class FailingRegistrar:
    """Registrar that always fails."""

    def __init__(self):
        self.calls = 0

    async def register(self, **kwargs) -> None:
        self.calls += 1
        raise RuntimeError("database down")


class RecordingRegistrar:
    """Registrar remembering every registration."""

    def __init__(self):
        self.records: list[dict] = []

    async def register(self, **kwargs) -> None:
        self.records.append(kwargs)


def write_source(directory: Path, name: str = "source.mp4") -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42")
    return path


def profiles_for(*labels: str) -> list[TargetProfile]:
    """One profile per resolution label, stored under ``out/<label>.mp4``."""
    return [
        TargetProfile.from_resolution(Resolution(label), f"out/{label}.mp4")
        for label in labels
    ]

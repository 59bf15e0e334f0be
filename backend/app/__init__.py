"""Video Transcode Backend Application.

Accepts video uploads and transcodes each one into several resolutions
concurrently, with progress polling and per-resolution results.

Modules:
    - core: Configuration, logging, metrics, database setup
    - modules.transcoding: Upload intake, transcode jobs, artifact storage
"""

__version__ = "0.1.0"

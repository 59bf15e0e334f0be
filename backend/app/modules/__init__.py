"""Application modules.

- transcoding: Upload intake, concurrent multi-resolution transcoding,
  progress tracking and artifact storage
"""

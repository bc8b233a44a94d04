"""
Media merge engine package.

Provides the pieces the merge pipeline drives to combine a video, an audio
track and a subtitle track into one MP4:

- stage: In-memory working filesystem addressed by fixed logical names
- command: Declarative stream-mapping command rendered to FFmpeg arguments
- ffmpeg_engine: Lazily-initialised, process-wide FFmpeg engine
- container_probe: PyAV inspection of the merged container
"""

"""
Capture — camera frames and ArUco poses feeding the mapper

- camera.CameraFrameSource: video file or first working camera index
- detector.ArucoDetector: marker ids + per-marker translation (meters)
- service: CLI loop, `python -m capture.service --config config/params.yaml`
"""

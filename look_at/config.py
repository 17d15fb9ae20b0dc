"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    controller_uri: str = "ws://localhost:8765"
    controller_endpoint: str = "/head_controller/point_head_action"
    camera_frame: str = "/stereo_optical_frame"
    image_source: str = "0"  # device index, file path or stream URL; "none" = blank
    image_width: int = 640
    image_height: int = 480
    calibration_path: str = "camera_info.json"
    window_name: str = "Head camera"
    handshake_timeout_s: float = 2.0
    handshake_attempts: int = 3
    time_timeout_s: float = 5.0
    calibration_poll_s: float = 0.2
    send_timeout_s: float = 1.0
    mock_hardware: bool = False
    mock_camera_matrix: list[float] = [525.0, 0.0, 320.0, 0.0, 525.0, 240.0, 0.0, 0.0, 1.0]
    debug: bool = False

    model_config = {
        "env_prefix": "LOOK_AT_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

from .frame import Frame, encode_jpeg, mean_luminance
from .frame_buffer import FrameBuffer
from .video_processor import VideoProcessor

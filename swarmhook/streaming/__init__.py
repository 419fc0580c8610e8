from .coordinator import StreamCoordinator, StreamMessage, StreamSession

__all__ = ["StreamCoordinator", "StreamMessage", "StreamSession"]

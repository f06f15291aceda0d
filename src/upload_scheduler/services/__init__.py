from .protocol import Destination, ProgressCallback, UploadService

__all__ = ["Destination", "ProgressCallback", "UploadService"]

from .resolve_stream import ResolveStreamUseCase, UnknownServerError

__all__ = ["ResolveStreamUseCase", "UnknownServerError"]

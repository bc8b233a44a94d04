from .merge import merge_router

__all__ = ["merge_router"]

from .crystal_builder import build_crystal

__all__ = ["build_crystal"]

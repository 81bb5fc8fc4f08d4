from .crystal_validator import validate_crystal

__all__ = ["validate_crystal"]

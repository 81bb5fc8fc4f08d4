from .calc_config import CalcConfig, RFactorConfig
from .crystal import Crystal, StackedLayer

__all__ = ["CalcConfig", "RFactorConfig", "Crystal", "StackedLayer"]

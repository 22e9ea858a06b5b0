from .policies import ZeroSumPolicy

# Stored values are rounded to this many decimal places after every pass.
DECIMALS: int = 2

# Policy used when a node with children is edited but its children sum to 0.
DEFAULT_ZERO_SUM_POLICY: ZeroSumPolicy = ZeroSumPolicy.EVEN

__all__ = [
    "DECIMALS",
    "DEFAULT_ZERO_SUM_POLICY",
    "ZeroSumPolicy",
]

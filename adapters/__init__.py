from .base import BaseAdapter
from .cryptocompare import CryptoCompareAdapter
from .yahoo import YahooChartAdapter
from .anthropic_model import AnthropicReasoningModel
from .entitlements import InMemoryEntitlementGate

__all__ = [
    "BaseAdapter",
    "CryptoCompareAdapter",
    "YahooChartAdapter",
    "AnthropicReasoningModel",
    "InMemoryEntitlementGate",
]

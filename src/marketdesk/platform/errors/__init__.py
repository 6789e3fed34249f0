from .marketdesk_error import MarketDeskError

__all__ = ["MarketDeskError"]

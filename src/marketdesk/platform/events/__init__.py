from .event_channel import EventChannel, Subscription

__all__ = ["EventChannel", "Subscription"]

"""
marketdesk: live market board aggregation and candle timelines.
"""

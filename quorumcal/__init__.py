"""
quorumcal - Publish quorum-based availability as an iCalendar feed.
"""

__version__ = "0.1.0"

"""Election Relay: live vote-count events from a Redis stream to browsers.

The relay tails a Redis stream of per-polling-unit vote deltas, republishes
each decoded event on a pub/sub channel, and pushes it to every connected
dashboard over a server-sent event stream.
"""

__version__ = "0.1.0"

"""OpenCode session idle notifier.

A service that follows an OpenCode server's global event stream, detects
sessions that finish working (or stop to ask a question), and pushes a
notification to Discord, Microsoft Teams or a generic webhook.
"""

__version__ = "0.4.0"

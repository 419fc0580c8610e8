"""SwarmHook: ephemeral webhook inboxes with polling and streaming delivery."""

__version__ = "0.1.0"

"""Social network server: accounts, friends, posts, groups and encrypted chat over HTTP and WebSocket."""

__version__ = "0.1.0"
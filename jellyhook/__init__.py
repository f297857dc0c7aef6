"""jellyhook - webhook notifications for media-server activity"""
__version__ = "0.1.0"

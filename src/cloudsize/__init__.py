"""cloudsize - interactive rclone folder size checker."""

__version__ = "1.10.0"

# channels/__init__.py
"""
Channels Package

- channel_adapter: web and WhatsApp delivery of composed replies
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .channel_adapter import ChannelAdapter, normalize_phone, split_text

__all__ = [
    "ChannelAdapter",
    "normalize_phone",
    "split_text"
]

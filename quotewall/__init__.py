"""
quotewall

Compose quote wallpapers: a background image, a translucent glowing panel and an outlined
quote with attribution, rendered at any resolution. The same renderer drives animated frame
sequences that can be exported as GIF or MP4.
"""

__version__ = "0.1.0"

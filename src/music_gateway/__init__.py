"""Music Library Gateway - authenticated relay to the music-library service"""

__version__ = "1.0.0"

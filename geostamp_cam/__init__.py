"""Place a map-link QR marker on a photo and save the flattened picture."""

__version__ = "0.1.0"

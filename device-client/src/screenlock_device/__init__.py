"""Screen Lock device client."""

"""Application-wide constants."""

APP_NAME = "Iris Segmentation Workbench"
VERSION = "1.0.0"

# Minimum separation between iris and pupil radius, in image pixels
OVERLAY_MARGIN = 10

PROCESS_ENDPOINT = "/api/process-base64"
HEALTH_ENDPOINT = "/api/health"

LOW_CONFIDENCE_THRESHOLD = 0.7

SUPPORTED_IMAGE_FORMATS = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".bmp": "image/bmp",
    ".gif": "image/gif",
    ".webp": "image/webp",
}

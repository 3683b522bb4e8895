from .http import HTTP_CONNECTOR

REGISTRY = {
    "http": HTTP_CONNECTOR,
}

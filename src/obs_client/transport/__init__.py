from .http_transport import API_KEY_HEADER, EVENTS_PATH, HttpTransport

__all__ = ["API_KEY_HEADER", "EVENTS_PATH", "HttpTransport"]

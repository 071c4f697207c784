"""trustgate: anti-forgery tokens, session cookie policy and origin checks for ASGI apps."""

__version__ = "0.1.0"

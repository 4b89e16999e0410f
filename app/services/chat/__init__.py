"""Chat relay services.

Imports are intentionally NOT eagerly loaded here so the relay core can be
imported without the Gemini SDK or a database driver. Use explicit imports:
    from app.services.chat.relay import ChatRelay
    from app.services.chat.registry import SessionRegistry
"""

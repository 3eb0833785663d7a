"""huskboard: reaction board and sticky messages for Telegram chats."""

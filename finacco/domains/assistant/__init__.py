from finacco.domains.assistant.entities import ChatHistory, Message, Role

__all__ = ["ChatHistory", "Message", "Role"]

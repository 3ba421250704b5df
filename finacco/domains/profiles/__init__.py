from finacco.domains.profiles.entities import Profile

__all__ = ["Profile"]

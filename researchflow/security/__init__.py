from .tokens import InvalidSubscriptionToken, SubscriptionTokenIssuer

__all__ = ["InvalidSubscriptionToken", "SubscriptionTokenIssuer"]

"""Policy module: JSON-configured runtime decisions."""

from discrecovery.policy.resolver import NotificationTemplate, PhotoPolicy, PolicyResolver

__all__ = ["NotificationTemplate", "PhotoPolicy", "PolicyResolver"]

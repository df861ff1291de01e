from collections.abc import Callable

from trust_safety.config.settings import Settings
from trust_safety.notifications.channels.base import BaseChannel
from trust_safety.notifications.channels.email_channel import HttpEmailChannel
from trust_safety.notifications.channels.example_channel import ExampleChannel
from trust_safety.notifications.channels.push_channel import HttpPushChannel
from trust_safety.notifications.models import Channel


class ChannelFactory:
    """Creates the configured delivery adapter for every channel."""

    SUPPORTED = ["example", "http"]

    @classmethod
    def create(
        cls,
        settings: Settings,
        resolve_email: Callable[[str], str | None],
    ) -> dict[Channel, BaseChannel]:
        return {
            Channel.EMAIL: cls.create_email(settings, resolve_email),
            Channel.PUSH: cls.create_push(settings),
        }

    @classmethod
    def create_email(
        cls,
        settings: Settings,
        resolve_email: Callable[[str], str | None],
    ) -> BaseChannel:
        provider = settings.email_provider.lower()
        if provider == "example":
            return ExampleChannel(Channel.EMAIL)
        if provider == "http":
            if not settings.email_api_key:
                raise ValueError("email_api_key is required for email_provider=http")
            return HttpEmailChannel(
                api_url=settings.email_api_url,
                api_key=settings.email_api_key,
                from_address=settings.email_from_address,
                resolve_address=resolve_email,
                timeout_seconds=settings.notification_attempt_timeout_seconds,
            )
        raise ValueError(f"Unknown email provider '{provider}'. Choose from: {cls.SUPPORTED}")

    @classmethod
    def create_push(cls, settings: Settings) -> BaseChannel:
        provider = settings.push_provider.lower()
        if provider == "example":
            return ExampleChannel(Channel.PUSH)
        if provider == "http":
            url = settings.push_gateway_url.strip()
            if not url:
                raise ValueError("push_gateway_url is required for push_provider=http")
            return HttpPushChannel(
                gateway_url=url,
                api_key=settings.push_api_key,
                timeout_seconds=settings.notification_attempt_timeout_seconds,
            )
        raise ValueError(f"Unknown push provider '{provider}'. Choose from: {cls.SUPPORTED}")

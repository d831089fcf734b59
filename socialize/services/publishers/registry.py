from typing import Dict, List

from socialize.services.publishers.base import BasePublisher, PublishError
from socialize.services.publishers.facebook import FacebookPublisher
from socialize.services.publishers.webhook import WebhookPublisher
from socialize.services.publishers.x import XPublisher

_publishers: Dict[str, BasePublisher] = {}


class UnknownPlatformError(PublishError):
    pass


def register_publisher(platform_type: str, publisher: BasePublisher) -> None:
    _publishers[platform_type] = publisher


def unregister_publisher(platform_type: str) -> None:
    _publishers.pop(platform_type, None)


def get_publisher(platform_type: str) -> BasePublisher:
    try:
        return _publishers[platform_type]
    except KeyError:
        raise UnknownPlatformError(f"No publisher registered for platform type '{platform_type}'")


def registered_platform_types() -> List[str]:
    return sorted(_publishers)


for _publisher in (WebhookPublisher(), XPublisher(), FacebookPublisher()):
    register_publisher(_publisher.platform_type, _publisher)

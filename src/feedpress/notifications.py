"""Post-publish notifications to Slack and ntfy."""

from __future__ import annotations

import json
import logging
from urllib.request import Request, urlopen

from feedpress.config import NotificationConfig
from feedpress.errors import best_effort
from feedpress.models import Opportunity, Post

logger = logging.getLogger(__name__)

_TIMEOUT = 10


class Notifier:
    """Announces newly published entities to the configured channels.

    Every send is best-effort; a failing channel is logged and skipped.
    """

    def __init__(self, config: NotificationConfig) -> None:
        self._config = config

    @property
    def is_configured(self) -> bool:
        return self._config.is_configured

    def notify_published(self, entity: Opportunity | Post) -> None:
        if not self.is_configured:
            return

        kind = "opportunity" if isinstance(entity, Opportunity) else "post"
        title = f"New {kind} published"
        body = entity.title
        if entity.source_url:
            body = f"{entity.title}\n{entity.source_url}"

        if self._config.slack_webhook:
            with best_effort("slack notification", entity_id=entity.id):
                self._post_slack(f"*{title}*\n{body}")
        if self._config.ntfy_url:
            with best_effort("ntfy notification", entity_id=entity.id):
                self._post_ntfy(title, body)

    def _post_slack(self, text: str) -> None:
        payload = json.dumps({"text": text}).encode("utf-8")
        request = Request(  # noqa: S310
            self._config.slack_webhook,
            data=payload,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        with urlopen(request, timeout=_TIMEOUT):  # noqa: S310
            pass
        logger.debug("Sent Slack notification")

    def _post_ntfy(self, title: str, body: str) -> None:
        url = f"{self._config.ntfy_url.rstrip('/')}/{self._config.ntfy_topic}"
        request = Request(  # noqa: S310
            url,
            data=body.encode("utf-8"),
            headers={"Title": title},
            method="POST",
        )
        with urlopen(request, timeout=_TIMEOUT):  # noqa: S310
            pass
        logger.debug("Sent ntfy notification to %s", url)

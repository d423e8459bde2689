"""Notification capability backed by slack_sdk's WebClient."""

from __future__ import annotations

import logging

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

from janitor_core.interactions import APPROVE_ACTION_ID, REJECT_ACTION_ID, encode_payload
from janitor_store.models import SentMessage

logger = logging.getLogger(__name__)

_TIMEOUT_SECONDS = 30


class SlackNotifier:
    """Sends direct messages to contributors.

    ``user_mapping`` maps GitHub logins to Slack user IDs; a login without an
    entry has no reachable destination. Send/update failures are logged and
    reported as None/False rather than raised.
    """

    def __init__(
        self,
        token: str,
        user_mapping: dict[str, str] | None = None,
        bot_name: str = "Repo Janitor",
        client: WebClient | None = None,
    ):
        self._client = client if client is not None else WebClient(token=token, timeout=_TIMEOUT_SECONDS)
        self._user_mapping = dict(user_mapping or {})
        self._bot_name = bot_name

    def resolve_user(self, github_login: str) -> str | None:
        return self._user_mapping.get(github_login)

    def open_conversation(self, slack_user_id: str) -> str | None:
        response = self._client.conversations_open(users=slack_user_id)
        channel = response.get("channel") or {}
        return channel.get("id")

    def post_message(self, channel: str, text: str, blocks: list[dict] | None = None) -> str | None:
        response = self._client.chat_postMessage(channel=channel, text=text, blocks=blocks)
        return response.get("ts")

    def update_message(self, channel: str, ts: str, text: str, blocks: list[dict] | None = None) -> bool:
        try:
            self._client.chat_update(channel=channel, ts=ts, text=text, blocks=blocks or [])
        except (SlackApiError, OSError) as e:
            logger.error("Failed to update Slack message %s in %s: %s", ts, channel, e)
            return False
        return True

    def send_direct_message(self, slack_user_id: str, text: str, blocks: list[dict] | None = None) -> SentMessage | None:
        logger.info("Sending Slack DM to %s", slack_user_id)
        try:
            channel = self.open_conversation(slack_user_id)
            if not channel:
                logger.error("Failed to open conversation with %s", slack_user_id)
                return None
            ts = self.post_message(channel, text, blocks)
        except (SlackApiError, OSError) as e:
            logger.error("Failed to send Slack DM to %s: %s", slack_user_id, e)
            return None
        if not ts:
            return None
        return SentMessage(channel=channel, ts=ts)

    def send_branch_deletion_request(
        self,
        github_login: str,
        owner: str,
        repo: str,
        branch_name: str,
        request_id: str,
    ) -> SentMessage | None:
        slack_user_id = self.resolve_user(github_login)
        if not slack_user_id:
            logger.warning("No Slack user mapping found for %s", github_login)
            return None
        text, blocks = self.build_deletion_message(owner, repo, branch_name, request_id)
        return self.send_direct_message(slack_user_id, text, blocks)

    def build_deletion_message(self, owner: str, repo: str, branch_name: str, request_id: str) -> tuple[str, list[dict]]:
        """Return the fallback text and the two-button Block Kit layout."""
        repo_full_name = f"{owner}/{repo}"
        value = encode_payload(owner, repo, branch_name, request_id)
        blocks = [
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": (
                        f"Hi!\n\nI'm *{self._bot_name}*. I noticed branch `{branch_name}` in `{repo_full_name}` "
                        "was merged manually (without a PR) and is still hanging around.\n\n"
                        "Would you like me to clean it up for you?"
                    ),
                },
            },
            {
                "type": "actions",
                "elements": [
                    {
                        "type": "button",
                        "text": {"type": "plain_text", "text": "Yes, delete it"},
                        "style": "primary",
                        "action_id": APPROVE_ACTION_ID,
                        "value": value,
                    },
                    {
                        "type": "button",
                        "text": {"type": "plain_text", "text": "No, keep it"},
                        "style": "danger",
                        "action_id": REJECT_ACTION_ID,
                        "value": value,
                    },
                ],
            },
        ]
        return f"Branch cleanup request for {branch_name} in {repo_full_name}", blocks

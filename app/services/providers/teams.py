"""
Microsoft Teams adapter: chat messages the user sent, via Microsoft Graph.
"""

from app.infrastructure.observability.logging import get_logger
from app.models.domain.activity_domain import ActivityKind, NormalizedActivity, TimeRange
from app.models.domain.credential_domain import AccessToken, ProviderType
from app.services.providers.base import parse_timestamp, plain_text
from app.services.providers.microsoft_graph import GRAPH_API_BASE_URL, GraphAdapter, graph_time

logger = get_logger(__name__)

CHAT_PAGE_SIZE = 50
MAX_CHATS = 50
MESSAGE_PAGE_SIZE = 50


class TeamsAdapter(GraphAdapter):
    provider = ProviderType.TEAMS
    item_cap = 200

    async def fetch_activity(
        self, user_id: str, token: AccessToken, time_range: TimeRange
    ) -> list[NormalizedActivity]:
        me = await self._get_json(f"{GRAPH_API_BASE_URL}/me", token)
        me_id = me.get("id")

        chats = await self._collect(
            f"{GRAPH_API_BASE_URL}/me/chats", token, {"$top": CHAT_PAGE_SIZE}, limit=MAX_CHATS
        )

        message_filter = (
            f"lastModifiedDateTime gt {graph_time(time_range.start)} "
            f"and lastModifiedDateTime lt {graph_time(time_range.end)}"
        )
        items: list[NormalizedActivity] = []
        for chat in chats:
            if len(items) >= self.item_cap:
                break
            messages = await self._collect(
                f"{GRAPH_API_BASE_URL}/chats/{chat['id']}/messages",
                token,
                {
                    "$top": MESSAGE_PAGE_SIZE,
                    "$orderby": "lastModifiedDateTime desc",
                    "$filter": message_filter,
                },
                limit=self.item_cap,
            )
            for message in messages:
                activity = self._message_to_activity(message, chat, me_id)
                if activity:
                    items.append(activity)

        logger.info(
            "Teams activity fetched", user_id=user_id, chat_count=len(chats), raw_count=len(items)
        )
        return self._finalize(items, time_range)

    def _message_to_activity(
        self, message: dict, chat: dict, me_id: str | None
    ) -> NormalizedActivity | None:
        if message.get("messageType") != "message" or message.get("deletedDateTime"):
            return None

        sender = ((message.get("from") or {}).get("user")) or {}
        if me_id and sender.get("id") != me_id:
            return None

        timestamp = parse_timestamp(message.get("createdDateTime"))
        if timestamp is None:
            return None

        body = (message.get("body") or {}).get("content")
        text = plain_text(body)
        return NormalizedActivity(
            provider=self.provider,
            external_id=f"{chat['id']}:{message['id']}",
            kind=ActivityKind.MESSAGE,
            title=plain_text(text, limit=120) or "(message)",
            timestamp=timestamp,
            actor=sender.get("displayName"),
            url=message.get("webUrl") or chat.get("webUrl"),
            description=plain_text(text, limit=1000) or None,
            raw_metadata={"chat_topic": chat.get("topic"), "chat_type": chat.get("chatType")},
        )

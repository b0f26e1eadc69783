"""
Conversations, messages and read receipts.

Read tracking is per user: a message is unread for a participant until
that participant holds a receipt for it, and senders hold a receipt for
their own messages from the start. ``Chat.unread_count`` is only a running
count of posted messages; per-user figures come from ``unread_count_for``.
"""

import logging
import os
import uuid
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

from sqlalchemy import exists, func, insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from ..database.session import SessionManager
from ..exceptions import (
    AuthorizationException,
    ResourceNotFoundException,
    ValidationException,
    VetClinicException,
)
from ..models.chat import Chat, ChatParticipant, make_participant_key
from ..models.message import Message, MessageRead, MessageType
from ..models.user import User, UserRole
from ..schemas.chat import (
    ConversationFilter,
    ConversationResponse,
    MessageCreate,
    MessageResponse,
)
from ..schemas.common import Page
from ..utils.config import ClinicSettings
from ..utils.datetime_utils import get_current_utc
from .access import can_chat_together
from .common import (
    get_or_404,
    insert_ignoring_conflicts,
    parse_id,
    parse_ids,
    parse_schema,
)
from .notifications import MESSAGES_READ, NEW_CHAT, NEW_MESSAGE, ConnectionRegistry

logger = logging.getLogger(__name__)


def cleanup_orphaned_upload(path: Optional[str]) -> None:
    """
    Delete an uploaded file whose message could not be stored.

    A failing delete is logged and otherwise ignored.
    """
    if not path:
        return
    try:
        os.remove(path)
        logger.info(f"Removed orphaned upload {path}")
    except OSError as e:
        logger.warning(f"Could not remove orphaned upload {path}: {e}")


class ChatService:
    """Conversation manager: find-or-create, posting, receipts and listings."""

    def __init__(
        self,
        session_manager: SessionManager,
        registry: ConnectionRegistry,
        settings: Optional[ClinicSettings] = None,
    ):
        self.session_manager = session_manager
        self.registry = registry
        self.settings = settings or ClinicSettings()

    # Conversations

    async def get_or_create_conversation(
        self, participant_ids: Iterable[uuid.UUID]
    ) -> Tuple[Chat, bool]:
        """
        Return the conversation of exactly these participants, creating it once.

        The participant set is de-duplicated and order does not matter.
        Concurrent callers with the same set all get the same conversation.

        Args:
            participant_ids: Ids of the participants

        Returns:
            ``(conversation, created)``

        Raises:
            ValidationException: If an id is malformed or fewer than two
                distinct participants are given
            ResourceNotFoundException: If a participant does not exist
        """
        ids = sorted(set(parse_ids(participant_ids, "participant_ids")), key=str)
        if len(ids) < 2:
            raise ValidationException(
                message="A conversation needs at least two distinct participants",
                field="participant_ids",
            )

        async with self.session_manager.get_transaction("get_or_create_conversation") as session:
            found = await session.execute(select(User.id).where(User.id.in_(ids)))
            missing = set(ids) - set(found.scalars().all())
            if missing:
                raise ResourceNotFoundException("User", sorted(missing, key=str)[0])
            chat, created = await self._get_or_create(session, ids)

        if created:
            logger.info(f"Conversation {chat.id} created for {chat.participant_key}")
        return chat, created

    @staticmethod
    async def _get_or_create(
        session: AsyncSession, ids: List[uuid.UUID]
    ) -> Tuple[Chat, bool]:
        key = make_participant_key(ids)
        now = get_current_utc()
        chat_id = uuid.uuid4()

        inserted = await session.execute(
            insert_ignoring_conflicts(
                session,
                Chat.__table__,
                {
                    "id": chat_id,
                    "participant_key": key,
                    "unread_count": 0,
                    "created_at": now,
                    "updated_at": now,
                },
                index_elements=["participant_key"],
            )
        )
        created = inserted.rowcount == 1
        if created:
            await session.execute(
                insert(ChatParticipant.__table__).values(
                    [
                        {"chat_id": chat_id, "user_id": user_id, "joined_at": now}
                        for user_id in ids
                    ]
                )
            )

        result = await session.execute(select(Chat).where(Chat.participant_key == key))
        return result.scalar_one(), created

    async def send_message(
        self,
        sender_id: uuid.UUID,
        recipient_id: uuid.UUID,
        type: Union[MessageType, str] = MessageType.TEXT,
        content: str = "",
        attachment_path: Optional[str] = None,
    ) -> Message:
        """
        Send a direct message, opening the conversation on first contact.

        Only a client and a veterinarian may talk to each other. The
        secretaries assisting the veterinarian are included in the
        conversation. A ``newChat`` event goes to every participant when the
        conversation is new.

        Raises:
            ResourceNotFoundException: If either user does not exist
            AuthorizationException: If the two roles may not chat
            ValidationException: If the content is empty
        """
        try:
            sender_id = parse_id(sender_id, "sender_id")
            recipient_id = parse_id(recipient_id, "recipient_id")
            async with self.session_manager.get_session() as session:
                sender = await get_or_404(session, User, sender_id, "User")
                recipient = await get_or_404(session, User, recipient_id, "User")
                if not can_chat_together(sender, recipient):
                    raise AuthorizationException(
                        message="Chat is only allowed between a client and a veterinarian",
                        action="chat",
                        user_id=sender_id,
                    )
                participants = {sender.id, recipient.id}
                for user in (sender, recipient):
                    if user.is_veterinarian():
                        participants |= await self._secretaries_of(session, user.id)

            chat, created = await self.get_or_create_conversation(participants)
        except VetClinicException:
            cleanup_orphaned_upload(attachment_path)
            raise

        if created:
            await self.registry.emit_many(
                chat.participant_ids, NEW_CHAT, self.chat_payload(chat)
            )

        return await self.post_message(
            chat.id, sender.id, type, content, attachment_path=attachment_path
        )

    @staticmethod
    async def _secretaries_of(
        session: AsyncSession, veterinarian_id: uuid.UUID
    ) -> Set[uuid.UUID]:
        result = await session.execute(
            select(User.id).where(
                User.role == UserRole.SECRETARY,
                User.veterinarian_id == veterinarian_id,
            )
        )
        return set(result.scalars().all())

    # Messages

    async def post_message(
        self,
        conversation_id: uuid.UUID,
        sender_id: uuid.UUID,
        type: Union[MessageType, str] = MessageType.TEXT,
        content: str = "",
        attachment_path: Optional[str] = None,
    ) -> Message:
        """
        Append a message to a conversation and push it to every participant.

        The sender gets a read receipt for the message, the conversation's
        message count and last-message pointer move forward, and after the
        commit ``newMessage`` is pushed to all participants, the sender
        included, so their other devices stay in sync.

        Args:
            conversation_id: Target conversation
            sender_id: Posting participant
            type: Payload kind
            content: Text body, or the stored path for media
            attachment_path: Uploaded file to delete if the message is refused

        Raises:
            ResourceNotFoundException: If the conversation does not exist
            AuthorizationException: If the sender is not a participant
            SchemaValidationException: If the content is empty
        """
        try:
            conversation_id = parse_id(conversation_id, "conversation_id")
            sender_id = parse_id(sender_id, "sender_id")
            data = parse_schema(
                MessageCreate,
                {"type": MessageType(type).value, "content": content},
            )
            async with self.session_manager.get_transaction("post_message") as session:
                chat = await get_or_404(session, Chat, conversation_id, "Conversation")
                if not chat.has_participant(sender_id):
                    raise AuthorizationException(
                        message="Only participants can post in this conversation",
                        action="post_message",
                        user_id=sender_id,
                    )
                participant_ids = chat.participant_ids

                message = Message(
                    chat_id=chat.id,
                    sender_id=sender_id,
                    type=MessageType(data.type),
                    content=data.content,
                    reads=[MessageRead(user_id=sender_id)],
                )
                session.add(message)
                await session.flush()

                await session.execute(
                    update(Chat)
                    .where(Chat.id == chat.id)
                    .values(
                        unread_count=Chat.unread_count + 1,
                        last_message_id=message.id,
                        updated_at=get_current_utc(),
                    )
                    .execution_options(synchronize_session=False)
                )
        except VetClinicException:
            cleanup_orphaned_upload(attachment_path)
            raise
        except ValueError as e:
            cleanup_orphaned_upload(attachment_path)
            raise ValidationException(
                message=f"Unsupported message type: {type}", field="type", value=type
            ) from e

        await self.registry.emit_many(
            participant_ids, NEW_MESSAGE, self.message_payload(message)
        )
        logger.debug(f"Message {message.id} posted in conversation {conversation_id}")
        return message

    async def mark_read(
        self,
        conversation_id: uuid.UUID,
        user_id: uuid.UUID,
        message_ids: Iterable[uuid.UUID],
    ) -> int:
        """
        Record that ``user_id`` has read the given messages.

        Marking is idempotent. Each original sender is told through a
        ``messagesRead`` event.

        Returns:
            Number of receipts that did not exist before

        Raises:
            ValidationException: If an id is malformed
            ResourceNotFoundException: If the conversation or a message is unknown
            AuthorizationException: If the user is not a participant, or is
                the sender of one of the messages
        """
        conversation_id = parse_id(conversation_id, "conversation_id")
        user_id = parse_id(user_id, "user_id")
        ids = list(dict.fromkeys(parse_ids(message_ids, "message_ids")))
        if not ids:
            return 0

        async with self.session_manager.get_transaction("mark_read") as session:
            chat = await get_or_404(session, Chat, conversation_id, "Conversation")
            self._require_participant(chat, user_id, "mark_read")

            rows = await session.execute(
                select(Message.id, Message.sender_id).where(
                    Message.chat_id == chat.id, Message.id.in_(ids)
                )
            )
            senders: Dict[uuid.UUID, uuid.UUID] = {row[0]: row[1] for row in rows}
            missing = [mid for mid in ids if mid not in senders]
            if missing:
                raise ResourceNotFoundException("Message", missing[0])
            if user_id in senders.values():
                raise AuthorizationException(
                    message="You cannot mark your own messages as read",
                    action="mark_read",
                    user_id=user_id,
                )

            now = get_current_utc()
            result = await session.execute(
                insert_ignoring_conflicts(
                    session,
                    MessageRead.__table__,
                    [
                        {"message_id": mid, "user_id": user_id, "read_at": now}
                        for mid in ids
                    ],
                    index_elements=["message_id", "user_id"],
                )
            )
            inserted = max(result.rowcount, 0)

        by_sender: Dict[uuid.UUID, List[str]] = defaultdict(list)
        for mid in ids:
            by_sender[senders[mid]].append(str(mid))
        for sender_id, read_ids in by_sender.items():
            await self.registry.emit(
                sender_id,
                MESSAGES_READ,
                {
                    "chatId": str(conversation_id),
                    "messageIds": read_ids,
                    "readBy": str(user_id),
                },
            )

        logger.debug(
            f"User {user_id} read {len(ids)} message(s) in {conversation_id} ({inserted} new)"
        )
        return inserted

    async def unread_count_for(
        self, conversation_id: uuid.UUID, user_id: uuid.UUID
    ) -> int:
        """
        Count the messages of others that ``user_id`` has not read yet.

        Raises:
            ResourceNotFoundException: If the conversation does not exist
            AuthorizationException: If the user is not a participant
        """
        user_id = parse_id(user_id, "user_id")
        async with self.session_manager.get_session() as session:
            chat = await get_or_404(session, Chat, conversation_id, "Conversation")
            self._require_participant(chat, user_id, "read_conversation")
            return await self._unread_count(session, chat.id, user_id)

    @staticmethod
    async def _unread_count(
        session: AsyncSession, chat_id: uuid.UUID, user_id: uuid.UUID
    ) -> int:
        receipt = exists().where(
            MessageRead.message_id == Message.id, MessageRead.user_id == user_id
        )
        result = await session.execute(
            select(func.count(Message.id)).where(
                Message.chat_id == chat_id,
                Message.sender_id != user_id,
                ~receipt,
            )
        )
        return result.scalar_one()

    # Listings

    async def list_conversations(
        self,
        user_id: uuid.UUID,
        page: int = 1,
        filters: Optional[ConversationFilter] = None,
    ) -> Page[ConversationResponse]:
        """
        List a user's conversations, most recently active first.

        Args:
            user_id: Viewing participant
            page: 1-based page number
            filters: Optional name and date filters

        Returns:
            One page with the viewer's unread count on each conversation
        """
        page = self._check_page(page)
        size = self.settings.conversation_page_size

        async with self.session_manager.get_session() as session:
            user = await get_or_404(session, User, user_id, "User")

            stmt = (
                select(Chat)
                .join(ChatParticipant, ChatParticipant.chat_id == Chat.id)
                .where(ChatParticipant.user_id == user.id)
            )
            if filters is not None and filters.has_name_filter:
                stmt = stmt.where(Chat.id.in_(self._name_filter(user.id, filters)))
            if filters is not None and filters.has_date_filter:
                in_range = select(Message.chat_id)
                if filters.start_date is not None:
                    in_range = in_range.where(Message.created_at >= filters.start_date)
                if filters.end_date is not None:
                    in_range = in_range.where(Message.created_at <= filters.end_date)
                stmt = stmt.where(Chat.id.in_(in_range))

            total = (
                await session.execute(select(func.count()).select_from(stmt.subquery()))
            ).scalar_one()
            result = await session.execute(
                stmt.order_by(Chat.updated_at.desc(), Chat.id)
                .offset((page - 1) * size)
                .limit(size)
            )

            items = []
            for chat in result.scalars().all():
                last_message = None
                if chat.last_message_id is not None:
                    message = await session.get(Message, chat.last_message_id)
                    if message is not None:
                        last_message = MessageResponse.model_validate(message)
                items.append(
                    ConversationResponse(
                        id=chat.id,
                        participant_ids=chat.participant_ids,
                        last_message=last_message,
                        unread_count=await self._unread_count(session, chat.id, user.id),
                        updated_at=chat.updated_at,
                    )
                )

        return Page[ConversationResponse](
            items=items, page=page, page_size=size, total=total
        )

    @staticmethod
    def _name_filter(user_id: uuid.UUID, filters: ConversationFilter):
        other = aliased(ChatParticipant)
        person = aliased(User)
        conditions = []
        if filters.first_name:
            conditions.append(person.first_name.ilike(f"%{filters.first_name}%"))
        if filters.last_name:
            conditions.append(person.last_name.ilike(f"%{filters.last_name}%"))
        return (
            select(other.chat_id)
            .join(person, person.id == other.user_id)
            .where(other.user_id != user_id, or_(*conditions))
        )

    async def list_messages(
        self, conversation_id: uuid.UUID, user_id: uuid.UUID, page: int = 1
    ) -> Page[MessageResponse]:
        """
        List a conversation's messages, oldest first.

        Raises:
            ResourceNotFoundException: If the conversation does not exist
            AuthorizationException: If the user is not a participant
        """
        user_id = parse_id(user_id, "user_id")
        page = self._check_page(page)
        size = self.settings.message_page_size

        async with self.session_manager.get_session() as session:
            chat = await get_or_404(session, Chat, conversation_id, "Conversation")
            self._require_participant(chat, user_id, "read_conversation")

            total = (
                await session.execute(
                    select(func.count(Message.id)).where(Message.chat_id == chat.id)
                )
            ).scalar_one()
            result = await session.execute(
                select(Message)
                .where(Message.chat_id == chat.id)
                .order_by(Message.created_at, Message.id)
                .offset((page - 1) * size)
                .limit(size)
            )
            items = [MessageResponse.model_validate(m) for m in result.scalars().all()]

        return Page[MessageResponse](items=items, page=page, page_size=size, total=total)

    # Payloads and helpers

    @staticmethod
    def message_payload(message: Message) -> Dict[str, Any]:
        """JSON payload of the ``newMessage`` event."""
        return MessageResponse.model_validate(message).model_dump(mode="json")

    @staticmethod
    def chat_payload(chat: Chat) -> Dict[str, Any]:
        """JSON payload of the ``newChat`` event."""
        return {
            "id": str(chat.id),
            "participants": [str(pid) for pid in chat.participant_ids],
            "createdAt": chat.created_at.isoformat(),
        }

    @staticmethod
    def _require_participant(chat: Chat, user_id: uuid.UUID, action: str) -> None:
        if not chat.has_participant(user_id):
            raise AuthorizationException(
                message="You are not a participant of this conversation",
                action=action,
                user_id=user_id,
            )

    @staticmethod
    def _check_page(page: int) -> int:
        if page < 1:
            raise ValidationException(
                message="Page must be 1 or greater", field="page", value=page
            )
        return page
